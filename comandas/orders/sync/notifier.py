"""User-visible notifications raised by the sync engine."""
import logging

logger = logging.getLogger(__name__)


class Notifier:
    """Interface; display shells subclass this (toast, sound, console...)."""

    def new_order(self, order):
        pass

    def success(self, message):
        pass

    def error(self, message):
        pass


class LoggingNotifier(Notifier):
    def new_order(self, order):
        logger.info(
            f"🔔 [Orders] Nuevo pedido #{order.get('order_number')} - "
            f"{order.get('customer_name', '')}"
        )

    def success(self, message):
        logger.info(f"✅ [Orders] {message}")

    def error(self, message):
        logger.error(f"❌ [Orders] {message}")
