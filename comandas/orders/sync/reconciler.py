"""
Reconciler: optimistic kitchen actions.

Each action is an OptimisticCommand run by one executor:
  1. snapshot the fields it will touch
  2. apply the change to the LocalOrderCache right away
  3. issue the remote write on the I/O pool
  4. success -> keep local state (the change-feed echo will match it) and
     queue side effects; failure -> restore the snapshot and tell the user

Webhook / printer side effects go through the outbound queue after a
confirmed write and never cause a revert.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from ..payments import is_pickup
from .cache import COMPLETED, PENDING
from .items import item_status_of, with_item_toggled

logger = logging.getLogger(__name__)

READY_FOR_PICKUP = 'listo_para_retirar'
COURIER_DEPARTED = 'cadete_salio'


def status_notification_payload(order):
    pickup = is_pickup(order.get('delivery_address'))
    return {
        'order_number': order.get('order_number'),
        'nombre': order.get('customer_name'),
        'telefono': order.get('phone'),
        'tipo': 'retiro' if pickup else 'envio',
        'estado': READY_FOR_PICKUP if pickup else COURIER_DEPARTED,
        'direccion_envio': order.get('delivery_address'),
    }


@dataclass
class OptimisticCommand:
    """
    Attributes:
        name: action name for logs
        order_id: target order
        fields: local field values to apply
        remote: blocking remote write, run on the I/O pool
        error_message: user-visible message when the write fails
        on_confirmed: side effects to queue after a successful write
        snapshot: pre-mutation values of `fields`, captured by the executor
    """
    name: str
    order_id: str
    fields: Dict[str, Any]
    remote: Callable[[], Any]
    error_message: str
    on_confirmed: Optional[Callable[[Any], None]] = None
    snapshot: Dict[str, Any] = field(default_factory=dict)

    def capture(self, order):
        self.snapshot = {name: order.get(name) for name in self.fields}

    def apply(self, cache):
        cache.merge_update(self.order_id, self.fields)

    def revert(self, cache):
        """Restore the snapshotted fields; an order deleted meanwhile stays deleted."""
        current = cache.get(self.order_id)
        if current is None:
            logger.info(f"[Reconciler] {self.name}: order {self.order_id} is gone, nothing to revert")
            return
        cache.apply_row({**current, **self.snapshot})


class Reconciler:
    def __init__(self, store, cache, scheduler, notifier, outbound=None):
        self.store = store
        self.cache = cache
        self.scheduler = scheduler
        self.notifier = notifier
        self.outbound = outbound
        self.in_flight = 0
        self._disposed = False

    # ========================
    # EXECUTOR
    # ========================

    def execute(self, command):
        """Run one command. Returns False when it could not be started."""
        if self._disposed:
            return False

        order = self.cache.get(command.order_id)
        if order is None:
            logger.warning(f"⚠️  [Reconciler] {command.name}: order {command.order_id} not cached")
            return False

        command.capture(order)
        command.apply(self.cache)
        self.in_flight += 1
        logger.info(f"📝 [Reconciler] {command.name} applied locally - Order ID: {command.order_id}")

        self.scheduler.run_io(
            command.remote,
            lambda result, error: self._settle(command, result, error),
        )
        return True

    def _settle(self, command, result, error):
        if self._disposed:
            logger.debug(f"[Reconciler] Discarding {command.name} response after dispose")
            return
        self.in_flight -= 1

        if error is not None:
            logger.error(
                f"❌ [Reconciler] {command.name} failed, reverting - "
                f"Order ID: {command.order_id}, Error: {error}"
            )
            command.revert(self.cache)
            self.notifier.error(command.error_message)
            return

        logger.info(f"✅ [Reconciler] {command.name} confirmed - Order ID: {command.order_id}")
        if command.on_confirmed is not None:
            try:
                command.on_confirmed(result)
            except Exception as e:
                logger.error(f"❌ [Reconciler] Side effects for {command.name} failed: {e}", exc_info=True)

    def dispose(self):
        self._disposed = True

    # ========================
    # ACTIONS
    # ========================

    def _remote_update(self, order_id, fields):
        return lambda: self.store.update(order_id, fields)

    def toggle_item(self, order_id, index):
        order = self.cache.get(order_id)
        if order is None:
            return False
        item_status = item_status_of(order)
        if item_status is None:
            logger.debug(f"[Reconciler] Order {order_id} has no item_status, toggle ignored")
            return False
        if not 0 <= index < min(len(item_status), len(order.get('items') or [])):
            logger.warning(f"⚠️  [Reconciler] Item index {index} out of range for order {order_id}")
            return False

        new_status = with_item_toggled(item_status, index)
        return self.execute(OptimisticCommand(
            name='toggle_item',
            order_id=order_id,
            fields={'item_status': new_status},
            remote=self._remote_update(order_id, {'item_status': new_status}),
            error_message='No se pudo actualizar el item',
        ))

    def complete_order(self, order_id):
        order = self.cache.get(order_id)
        if order is None or order.get('status') != PENDING:
            logger.debug(f"[Reconciler] Order {order_id} is not pending, completion ignored")
            return False

        ok = self.execute(OptimisticCommand(
            name='complete_order',
            order_id=order_id,
            fields={'status': COMPLETED},
            remote=self._remote_update(order_id, {'status': COMPLETED}),
            error_message='Error al guardar en base de datos',
        ))
        if ok:
            self.notifier.success(f"Pedido #{order.get('order_number')} completado")
        return ok

    def mark_courier_departed(self, order_id):
        order = self.cache.get(order_id)
        if order is None:
            return False
        if order.get('courier_departed'):
            logger.debug(f"[Reconciler] Order {order_id} already marked, nothing to do")
            return False

        def notify(result):
            if self.outbound is not None:
                self.outbound.notify_status(status_notification_payload(result or order))

        ok = self.execute(OptimisticCommand(
            name='mark_courier_departed',
            order_id=order_id,
            fields={'courier_departed': True},
            remote=self._remote_update(order_id, {'courier_departed': True}),
            error_message='No se pudo marcar el estado',
            on_confirmed=notify,
        ))
        if ok:
            self.notifier.success(
                'Listo para retirar' if is_pickup(order.get('delivery_address')) else 'Cadete en camino'
            )
        return ok

    def reprint(self, order_id, kinds=None):
        """Queue ticket delivery for a cached order. No cache mutation."""
        order = self.cache.get(order_id)
        if order is None or self.outbound is None:
            return False
        self.outbound.print_tickets(order, kinds)
        return True
