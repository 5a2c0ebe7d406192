from wealth_drive.utils.telegram import TelegramNotifier, send_telegram

__all__ = ["TelegramNotifier", "send_telegram"]
