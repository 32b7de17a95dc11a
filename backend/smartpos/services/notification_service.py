# Overview: Best-effort sale notifications (Telegram Bot API over httpx).

"""
Sale notifications.

Delivery happens after the ticket transaction has committed, on a
background worker, and never raises into the caller. A missing bot token
or SALE_NOTIFICATIONS_ENABLED=false installs a no-op notifier.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime

import httpx
from flask import Flask, current_app

NOTIFIER_KEY = "sale_notifier"
EXECUTOR_KEY = "sale_notification_executor"


@dataclass(frozen=True)
class SaleSummary:
    ticket_number: str
    customer_name: str | None
    item_count: int
    total: str
    created_at: datetime | None
    status: str


def build_sale_message(summary: SaleSummary) -> str:
    created = summary.created_at.strftime("%d/%m/%Y %H:%M") if summary.created_at else "-"
    customer = summary.customer_name or "Walk-in Customer"
    return (
        "🛒 *New Sale Alert!*\n\n"
        f"📋 Ticket: `{summary.ticket_number}`\n"
        f"👤 Customer: {customer}\n"
        f"📦 Items: {summary.item_count}\n"
        f"💰 Total: *${summary.total}*\n"
        f"🕐 Time: {created}\n"
        f"✅ Status: {summary.status}"
    )


class NullSaleNotifier:
    """Used when notifications are not configured."""

    def notify_sale(self, summary: SaleSummary) -> None:
        return None


class TelegramSaleNotifier:
    def __init__(self, *, bot_token: str, chat_id: str, api_base: str, timeout: float, logger: logging.Logger):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.logger = logger

    @property
    def url(self) -> str:
        return f"{self.api_base}/bot{self.bot_token}/sendMessage"

    def notify_sale(self, summary: SaleSummary) -> None:
        payload = {
            "chat_id": self.chat_id,
            "text": build_sale_message(summary),
            "parse_mode": "Markdown",
        }
        response = httpx.post(self.url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        self.logger.info("Telegram notification sent for ticket %s", summary.ticket_number)


def init_notifications(app: Flask) -> None:
    """Install the notifier and its worker pool on the app."""
    token = app.config.get("TELEGRAM_BOT_TOKEN")
    chat_id = app.config.get("TELEGRAM_CHAT_ID")
    if app.config.get("SALE_NOTIFICATIONS_ENABLED") and token and chat_id:
        notifier = TelegramSaleNotifier(
            bot_token=token,
            chat_id=chat_id,
            api_base=app.config.get("TELEGRAM_API_BASE", "https://api.telegram.org"),
            timeout=app.config.get("NOTIFICATION_TIMEOUT_SECONDS", 5.0),
            logger=app.logger,
        )
    else:
        notifier = NullSaleNotifier()

    app.extensions[NOTIFIER_KEY] = notifier
    app.extensions[EXECUTOR_KEY] = ThreadPoolExecutor(max_workers=2, thread_name_prefix="sale-notify")


def dispatch_sale_notification(summary: SaleSummary) -> None:
    """
    Fire-and-forget delivery of a sale notification.

    Must be called after commit; holds no DB state and never raises.
    """
    app = current_app._get_current_object()
    notifier = app.extensions.get(NOTIFIER_KEY)
    if notifier is None:
        return
    logger = app.logger

    def _deliver():
        try:
            notifier.notify_sale(summary)
        except Exception:
            logger.exception("Failed to send sale notification for ticket %s", summary.ticket_number)

    if app.config.get("NOTIFICATIONS_INLINE"):
        _deliver()
        return

    executor = app.extensions.get(EXECUTOR_KEY)
    try:
        executor.submit(_deliver)
    except RuntimeError:
        logger.exception("Notification worker unavailable for ticket %s", summary.ticket_number)
