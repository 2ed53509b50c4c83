from .client import TelegramNotifier

__all__ = ["TelegramNotifier"]
