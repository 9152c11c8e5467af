"""
Remote order store interface consumed by the sync engine.

Implementations: orders.store.DjangoOrderStore (ORM + Kafka change feed) and
the in-memory fake used by the tests.
"""
import itertools
from abc import ABC, abstractmethod

# Transport status values delivered to the on_status callback
SUBSCRIBED = 'SUBSCRIBED'
CHANNEL_ERROR = 'CHANNEL_ERROR'
TIMED_OUT = 'TIMED_OUT'
CLOSED = 'CLOSED'

FAILURE_STATUSES = (CHANNEL_ERROR, TIMED_OUT, CLOSED)

# Change event kinds
INSERT = 'insert'
UPDATE = 'update'
DELETE = 'delete'

EVENT_KINDS = (INSERT, UPDATE, DELETE)

_handle_ids = itertools.count(1)


class SubscriptionHandle:
    """Opaque token for one live subscription."""

    def __init__(self, table, transport=None):
        self.id = next(_handle_ids)
        self.table = table
        self.transport = transport

    def __repr__(self):
        return f"<SubscriptionHandle #{self.id} {self.table}>"


class RemoteOrderStore(ABC):
    """
    Row store with a change feed.

    Reads and writes are blocking and may be called from any worker thread.
    Subscription callbacks are invoked from the transport's own thread.
    """

    @abstractmethod
    def select(self, filters=None, order_by='-created_at'):
        """
        Args:
            filters: field -> value equality filters
            order_by: field name, '-' prefix for descending

        Returns:
            list: order rows (dicts)
        """

    @abstractmethod
    def update(self, order_id, fields):
        """Update one row and return it. Raises OrderNotFound / RemoteStoreError."""

    @abstractmethod
    def delete(self, order_id):
        """Delete one row and return its last state."""

    @abstractmethod
    def subscribe(self, table, handlers, on_status):
        """
        Start a change feed.

        Args:
            table: table name ('orders')
            handlers: {'insert': fn(row), 'update': fn(row), 'delete': fn(old_row)}
            on_status: fn(status, error=None) with status in SUBSCRIBED,
                CHANNEL_ERROR, TIMED_OUT, CLOSED

        Returns:
            SubscriptionHandle
        """

    @abstractmethod
    def unsubscribe(self, handle):
        pass
