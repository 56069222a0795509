"""
Copy-trading orchestration.
"""

from .copy_engine import CopyEngine

__all__ = ["CopyEngine"]
