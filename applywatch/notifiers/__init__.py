"""Notification backends."""

from .telegram import DeliveryError, TelegramApi, TelegramError, TelegramNotifier

__all__ = ["DeliveryError", "TelegramApi", "TelegramError", "TelegramNotifier"]
