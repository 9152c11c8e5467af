"""
Order intake, status lookup and cancellation: the server-side operations
behind the HTTP views.
"""
import logging

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from .exceptions import CancellationWindowExpired, OrderNotFound
from .models import Order
from .payments import is_pickup
from .sync.items import build_item_status
from .tasks import print_cancel_tickets, print_order_tickets

logger = logging.getLogger(__name__)


def _queue(task, *args):
    """Queue a print task; a broker failure is logged, never raised."""
    try:
        task.delay(*args)
    except Exception as e:
        logger.error(f"❌ [Intake] Could not queue {task.name}: {e}", exc_info=True)


def todays_orders():
    return Order.objects.filter(created_at__date=timezone.localdate())


def next_order_number():
    """Daily sequence: today's order count + 1. Call inside the insert transaction."""
    return todays_orders().count() + 1


def create_order(data, idempotency_key=None):
    """
    Persist a validated order (OrderIntakeSerializer.validated_data).

    Returns:
        tuple: (order, created); created is False when the idempotency key
        matched an existing order
    """
    with transaction.atomic():
        if idempotency_key:
            existing = Order.objects.filter(idempotency_key=idempotency_key).first()
            if existing:
                logger.info(f"Duplicate request detected with key: {idempotency_key}")
                return existing, False

        items = data['items']
        order = Order.objects.create(
            order_number=next_order_number(),
            customer_name=data['customer_name'],
            phone=data.get('phone'),
            amount=data['amount'],
            payment_method=data['payment_method'],
            scheduled_time=data.get('scheduled_time'),
            delivery_address=data.get('delivery_address'),
            cash_tendered=data.get('cash_tendered'),
            change_due=data.get('change_due'),
            items=items,
            item_status=build_item_status(items),
            extras=data.get('extras'),
            status=Order.STATUS_PENDING,
            idempotency_key=idempotency_key,
        )
        logger.info(f"✅ [Intake] Order #{order.order_number} ({order.id}) created")

        order_id = str(order.id)
        transaction.on_commit(lambda: _queue(print_order_tickets, order_id))

    return order, True


def find_todays_order(order_number):
    """Most recent order with this number created today."""
    order = todays_orders().filter(order_number=order_number).order_by('-created_at').first()
    if order is None:
        raise OrderNotFound(order_number)
    return order


def status_message(order):
    pickup = is_pickup(order.delivery_address)
    number = order.order_number
    if order.courier_departed:
        if pickup:
            return f"El pedido #{number} está listo para retirar en el local"
        return f"El cadete ya salió con el pedido #{number}"
    if order.status == Order.STATUS_COMPLETED:
        if pickup:
            return f"El pedido #{number} está listo"
        return f"El pedido #{number} está listo pero el cadete aún no salió"
    return f"El pedido #{number} está en preparación"


def order_status(order_number):
    """Customer-facing status of today's order `order_number`."""
    try:
        order = find_todays_order(order_number)
    except OrderNotFound:
        return {
            'found': False,
            'message': f"No se encontró el pedido #{order_number} de hoy",
        }

    pickup = is_pickup(order.delivery_address)
    return {
        'found': True,
        'order_number': order.order_number,
        'status': order.status,
        'courier_departed': order.courier_departed,
        'is_pickup': pickup,
        'ready_for_pickup': pickup and order.courier_departed,
        'customer_name': order.customer_name,
        'delivery_address': order.delivery_address,
        'message': status_message(order),
    }


def cancel_order(order_number, now=None):
    """
    Delete today's order `order_number` if it is recent enough and queue the
    cancellation tickets.

    Raises:
        OrderNotFound
        CancellationWindowExpired: older than ORDER_CANCEL_WINDOW_MINUTES
    """
    now = now or timezone.now()
    window = settings.ORDER_CANCEL_WINDOW_MINUTES

    with transaction.atomic():
        order = find_todays_order(order_number)
        age_minutes = (now - order.created_at).total_seconds() / 60
        if age_minutes > window:
            raise CancellationWindowExpired(order_number, round(age_minutes, 1), window)

        customer_name = order.customer_name
        order.delete()
        logger.info(f"🗑️  [Intake] Order #{order_number} cancelled after {age_minutes:.1f} min")
        transaction.on_commit(lambda: _queue(print_cancel_tickets, order_number, customer_name))

    return {'order_number': order_number, 'customer_name': customer_name}
