"""
OutboundQueue: how the sync engine hands side effects to Celery.

Enqueue failures (broker down...) are logged and dropped; they must never
reach the reconciler, which only cares about the order write itself.
"""
import logging

from .tasks import deliver_ticket, print_cancel_tickets, send_status_notification, ticket_payload
from .tickets import TICKET_KINDS

logger = logging.getLogger(__name__)


class OutboundQueue:
    def _enqueue(self, task, *args):
        try:
            return task.delay(*args)
        except Exception as e:
            logger.error(f"❌ [Outbound] Could not queue {task.name}: {e}", exc_info=True)
            return None

    def print_tickets(self, order, kinds=None):
        """Render tickets from the cached row and queue their delivery."""
        for kind in kinds or TICKET_KINDS:
            try:
                payload = ticket_payload(order, kind)
            except Exception as e:
                logger.error(f"❌ [Outbound] Could not render {kind} ticket for {order.get('id')}: {e}")
                continue
            self._enqueue(deliver_ticket, kind, payload)

    def print_cancel_tickets(self, order_number, customer_name):
        self._enqueue(print_cancel_tickets, order_number, customer_name)

    def notify_status(self, payload):
        self._enqueue(send_status_notification, payload)
