"""
Outbound side effects, each with its own retry/backoff:
- change events to Kafka
- ticket delivery to the kitchen / cashier print webhooks
- customer status notifications

None of these ever block or roll back an order write.
"""
import base64
import logging

import requests
from celery import shared_task
from django.conf import settings

from .kafka_producer import publish_change_event, publish_to_dlq
from .models import Order
from .tickets import CASHIER, KITCHEN, TICKET_KINDS, render_cancel_ticket, render_ticket

logger = logging.getLogger(__name__)


def _webhook_url(kind):
    return {
        KITCHEN: settings.PRINT_WEBHOOK_KITCHEN_URL,
        CASHIER: settings.PRINT_WEBHOOK_CASHIER_URL,
    }[kind]


def ticket_payload(order, kind, ticket=None):
    """
    Body posted to a print webhook.

    Args:
        order: order row (dict)
        kind: KITCHEN or CASHIER
        ticket: pre-rendered bytes (rendered from `order` when omitted)
    """
    if ticket is None:
        ticket = render_ticket(order, kind)
    return {
        'order_number': order.get('order_number'),
        'ticket': base64.b64encode(ticket).decode('ascii'),
        'nombre': order.get('customer_name'),
        'monto': order.get('amount'),
        'metodo_pago': order.get('payment_method'),
        'items': order.get('items'),
        'direccion_envio': order.get('delivery_address'),
    }


def cancel_ticket_payload(kind, order_number, customer_name):
    """Body posted to a print webhook for a cancellation ticket."""
    ticket = render_cancel_ticket(kind, order_number, customer_name)
    return {
        'order_number': order_number,
        'ticket': base64.b64encode(ticket).decode('ascii'),
        'nombre': customer_name,
        'type': 'cancel',
    }


@shared_task(
    bind=True,
    max_retries=5,
    retry_backoff=True,
    autoretry_for=(Exception,)
)
def publish_order_change(self, event):
    """Publish one change event; parks it on the DLQ once retries are exhausted."""
    try:
        metadata = publish_change_event(event)
        return {'status': 'success', 'event_id': event.get('event_id'), **metadata}

    except Exception as e:
        logger.error(f"❌ [Change Events] Publish failed for {event.get('event_id')}: {e}")
        if self.request.retries >= self.max_retries:
            publish_to_dlq(event, str(e))
        raise


@shared_task(
    bind=True,
    max_retries=5,
    retry_backoff=True,
    autoretry_for=(requests.RequestException,)
)
def deliver_ticket(self, kind, payload):
    """POST a rendered ticket to the printer webhook for `kind`."""
    if kind not in TICKET_KINDS:
        raise ValueError(f"Unknown ticket kind: {kind}")

    url = _webhook_url(kind)
    logger.info(f"🖨️  [Print Task] Sending {kind} ticket for order #{payload.get('order_number')}")

    response = requests.post(url, json=payload, timeout=settings.WEBHOOK_TIMEOUT_SECONDS)
    response.raise_for_status()

    logger.info(f"✅ [Print Task] {kind} ticket delivered for order #{payload.get('order_number')}")
    return {'status': 'success', 'kind': kind, 'order_number': payload.get('order_number')}


@shared_task
def print_order_tickets(order_id, kinds=None):
    """Render and queue delivery of the tickets of a stored order."""
    try:
        order = Order.objects.get(id=order_id)
    except Order.DoesNotExist:
        logger.error(f"[Print Task] Order {order_id} not found")
        return {'status': 'error', 'message': 'Order not found'}

    row = order.to_row()
    kinds = kinds or TICKET_KINDS
    for kind in kinds:
        deliver_ticket.delay(kind, ticket_payload(row, kind))

    logger.info(f"[Print Task] Queued {', '.join(kinds)} tickets for order #{order.order_number}")
    return {'status': 'queued', 'order_id': str(order_id), 'kinds': list(kinds)}


@shared_task
def print_cancel_tickets(order_number, customer_name):
    for kind in TICKET_KINDS:
        deliver_ticket.delay(kind, cancel_ticket_payload(kind, order_number, customer_name))

    logger.info(f"[Print Task] Queued cancellation tickets for order #{order_number}")
    return {'status': 'queued', 'order_number': order_number}


@shared_task(
    bind=True,
    max_retries=3,
    retry_backoff=True,
    autoretry_for=(requests.RequestException,)
)
def send_status_notification(self, payload):
    """
    Tell the customer their order is ready for pickup / on its way.

    Args:
        payload: {order_number, nombre, telefono, tipo, estado, direccion_envio}
    """
    logger.info(
        f"[Notification Task] Order #{payload.get('order_number')} -> {payload.get('estado')}"
    )

    response = requests.post(
        settings.STATUS_WEBHOOK_URL, json=payload, timeout=settings.WEBHOOK_TIMEOUT_SECONDS
    )
    response.raise_for_status()

    logger.info(f"[Notification Task] Sent for order #{payload.get('order_number')}")
    return {'status': 'success', 'order_number': payload.get('order_number')}
