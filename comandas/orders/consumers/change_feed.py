"""
KafkaChangeFeed: the change-feed transport behind DjangoOrderStore.subscribe().

Each subscription gets its own consumer group and reads only events produced
after it joined (auto_offset_reset='latest'); missed history is recovered by
the engine's resync, not by replaying the topic.
"""
import logging
import threading
import uuid

from django.conf import settings
from kafka.errors import NoBrokersAvailable

from ..sync.store import CHANNEL_ERROR, CLOSED, DELETE, EVENT_KINDS, SUBSCRIBED, TIMED_OUT
from .base_consumer import BaseKafkaConsumer

logger = logging.getLogger(__name__)


class KafkaChangeFeed(BaseKafkaConsumer):
    def __init__(self, table, handlers, on_status, topic=None, client_id=None):
        """
        Args:
            table: only events for this table are delivered
            handlers: {'insert': fn(row), 'update': fn(row), 'delete': fn(old_row)}
            on_status: fn(status, error=None)
            topic: defaults to settings.KAFKA_TOPIC_ORDER_CHANGES
            client_id: suffix of the consumer group (random when omitted)
        """
        client_id = client_id or uuid.uuid4().hex[:12]
        super().__init__(
            topic=topic or settings.KAFKA_TOPIC_ORDER_CHANGES,
            group_id=f"{settings.KAFKA_CONSUMER_GROUP_PREFIX}-feed-{client_id}",
            process_name=f"Change Feed {client_id}",
            auto_offset_reset='latest',
            max_retries=1,
        )
        self.table = table
        self.handlers = handlers
        self.on_status = on_status
        self._thread = None

    def subscribe(self):
        self._thread = threading.Thread(
            target=self.start, name=f"change-feed-{self.group_id}", daemon=True
        )
        self._thread.start()
        return self

    def unsubscribe(self):
        self.stop()

    def process_message(self, event):
        if event.get('table') != self.table:
            return True

        kind = event.get('type')
        if kind not in EVENT_KINDS:
            logger.warning(f"⚠️  [{self.process_name}] Unknown event type {kind!r}, skipped")
            return True

        handler = self.handlers.get(kind)
        if handler is not None:
            handler(event.get('old') if kind == DELETE else event.get('new'))
        return True

    def on_ready(self):
        self.on_status(SUBSCRIBED)

    def on_stopped(self, error=None):
        if error is None:
            self.on_status(CLOSED)
        elif isinstance(error, NoBrokersAvailable):
            self.on_status(TIMED_OUT, str(error))
        else:
            self.on_status(CHANNEL_ERROR, str(error))
