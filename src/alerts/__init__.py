from .telegram_bot import TelegramNotifier

__all__ = ['TelegramNotifier']
