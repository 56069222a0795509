"""
Execution for copy trading: proportional sizing and venue routing.
Supports dry run (default) and live execution.
"""

from .sizing import SizingEngine, SizingLimits, SizingDecision
from .router import ExecutionRouter

__all__ = ["SizingEngine", "SizingLimits", "SizingDecision", "ExecutionRouter"]
