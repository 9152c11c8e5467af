"""
DjangoOrderStore: the remote order store as seen by the sync engine.

Reads and writes go through the ORM (so model signals publish the change
events); subscriptions are KafkaChangeFeed consumers.
"""
import logging

from django.db import DatabaseError, close_old_connections, connection, transaction

from .consumers.change_feed import KafkaChangeFeed
from .exceptions import OrderNotFound, RemoteStoreError
from .models import Order
from .sync.store import RemoteOrderStore, SubscriptionHandle

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ('item_status', 'status', 'courier_departed')


class DjangoOrderStore(RemoteOrderStore):
    def __init__(self, feed_factory=KafkaChangeFeed):
        self.feed_factory = feed_factory

    def _recycle_connection(self):
        """
        Called from long-lived I/O pool threads: drop a dead or expired
        connection before the next query. Never inside a caller's transaction.
        """
        if not connection.in_atomic_block:
            close_old_connections()

    def select(self, filters=None, order_by='-created_at'):
        self._recycle_connection()
        try:
            queryset = Order.objects.filter(**(filters or {})).order_by(order_by)
            return [order.to_row() for order in queryset]
        except DatabaseError as e:
            raise RemoteStoreError(f"select failed: {e}") from e

    def update(self, order_id, fields):
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise RemoteStoreError(f"Fields not updatable: {', '.join(sorted(unknown))}")

        self._recycle_connection()
        try:
            with transaction.atomic():
                order = Order.objects.select_for_update().get(id=order_id)
                for name, value in fields.items():
                    setattr(order, name, value)
                # update_fields keeps concurrent writes to other fields intact
                order.save(update_fields=list(fields) + ['updated_at'])
        except Order.DoesNotExist:
            raise OrderNotFound(order_id)
        except DatabaseError as e:
            raise RemoteStoreError(f"update of {order_id} failed: {e}") from e

        logger.info(f"✅ [Order Store] Updated {order_id}: {', '.join(fields)}")
        return order.to_row()

    def delete(self, order_id):
        self._recycle_connection()
        try:
            order = Order.objects.get(id=order_id)
            row = order.to_row()
            order.delete()
        except Order.DoesNotExist:
            raise OrderNotFound(order_id)
        except DatabaseError as e:
            raise RemoteStoreError(f"delete of {order_id} failed: {e}") from e

        logger.info(f"🗑️  [Order Store] Deleted {order_id}")
        return row

    def subscribe(self, table, handlers, on_status):
        feed = self.feed_factory(table, handlers, on_status)
        feed.subscribe()
        handle = SubscriptionHandle(table, transport=feed)
        logger.info(f"📡 [Order Store] Subscribed {handle}")
        return handle

    def unsubscribe(self, handle):
        if handle.transport is not None:
            handle.transport.unsubscribe()
        logger.info(f"📴 [Order Store] Unsubscribed {handle}")
