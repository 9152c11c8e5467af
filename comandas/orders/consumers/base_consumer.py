"""
Base Kafka consumer with:
- Idempotency handling (skip events already processed)
- Retry with exponential backoff
- Dead Letter Queue for events that keep failing
- Stoppable poll loop with ready / stopped hooks
"""
from kafka import KafkaConsumer
import json
import logging
import threading
from collections import OrderedDict
from abc import ABC, abstractmethod
from django.conf import settings
from datetime import datetime

logger = logging.getLogger(__name__)

DEDUP_CAPACITY = 1000  # event ids remembered per consumer


class BaseKafkaConsumer(ABC):
    """
    Base class for the change-event consumers.

    Subclasses implement process_message(); on_ready() and on_stopped() are
    optional hooks called from the consumer thread.
    """

    def __init__(self, topic, group_id, process_name, auto_offset_reset='earliest',
                 max_retries=3, poll_timeout_ms=1000, dedup_capacity=DEDUP_CAPACITY):
        """
        Args:
            topic: Kafka topic to subscribe
            group_id: Consumer group ID
            process_name: Name of the process for logging
            auto_offset_reset: where a new group starts reading
            max_retries: processing attempts per event before the DLQ
            poll_timeout_ms: how long one poll blocks (bounds stop latency)
        """
        self.topic = topic
        self.group_id = group_id
        self.process_name = process_name
        self.auto_offset_reset = auto_offset_reset
        self.max_retries = max_retries
        self.poll_timeout_ms = poll_timeout_ms
        self.consumer = None
        self.dedup_capacity = dedup_capacity
        self.processed_events = OrderedDict()  # oldest first, bounded by dedup_capacity
        self.stats = {'received': 0, 'processed': 0, 'duplicates': 0, 'failed': 0}
        self._stop_event = threading.Event()
        self._ready = False

    def _initialize_consumer(self):
        try:
            self.consumer = KafkaConsumer(
                self.topic,
                bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
                group_id=self.group_id,
                auto_offset_reset=self.auto_offset_reset,
                enable_auto_commit=False,      # Manual commit after processing
                max_poll_records=10,
                session_timeout_ms=30000,
                heartbeat_interval_ms=10000,
                max_poll_interval_ms=300000,
            )
            logger.info(f"✅ [{self.process_name}] Consumer initialized successfully")
        except Exception as e:
            logger.error(f"❌ [{self.process_name}] Failed to initialize consumer: {e}")
            raise

    # ========================
    # IDEMPOTENCY
    # ========================

    def _idempotency_key(self, event):
        event_id = event.get('event_id')
        if event_id:
            return event_id
        row = event.get('new') or event.get('old') or {}
        return f"{event.get('type')}:{row.get('id')}:{event.get('timestamp')}"

    def _is_already_processed(self, event):
        """
        Redeliveries within one consumer's lifetime. Each consumer owns its
        group, so nothing carries over between consumers.
        """
        key = self._idempotency_key(event)

        if key in self.processed_events:
            logger.warning(f"⚠️  [{self.process_name}] DUPLICATE detected - Key: {key}")
            return True
        return False

    def _mark_as_processed(self, event):
        key = self._idempotency_key(event)
        self.processed_events[key] = True
        self.processed_events.move_to_end(key)
        while len(self.processed_events) > self.dedup_capacity:
            self.processed_events.popitem(last=False)
        logger.debug(f"✅ [{self.process_name}] Marked as processed - Key: {key}")

    # ========================
    # PROCESSING
    # ========================

    @abstractmethod
    def process_message(self, event):
        """
        Args:
            event: Deserialized change event

        Returns:
            bool: True if processing successful, False otherwise
        """

    def on_ready(self):
        """Partitions are assigned; events are flowing."""

    def on_stopped(self, error=None):
        """Poll loop ended; `error` is the exception that ended it, if any."""

    def _process_with_retry(self, event):
        for attempt in range(1, self.max_retries + 1):
            try:
                if self.process_message(event):
                    return True
                logger.warning(
                    f"⚠️  [{self.process_name}] Processing returned False - "
                    f"Attempt {attempt}/{self.max_retries}"
                )
            except Exception as e:
                logger.error(
                    f"❌ [{self.process_name}] Error on attempt {attempt}/{self.max_retries}: {e}",
                    exc_info=True
                )

            if attempt < self.max_retries:
                backoff = 2 ** attempt  # 2s, 4s, 8s
                logger.info(f"⏳ [{self.process_name}] Waiting {backoff}s before retry...")
                if self._stop_event.wait(backoff):
                    return False

        return False

    def _send_to_dlq(self, event, error_message):
        try:
            from ..kafka_producer import get_producer

            dlq_data = {
                **event,
                'error': error_message,
                'failed_at': datetime.now().isoformat(),
                'consumer_group': self.group_id,
                'process_name': self.process_name,
            }

            producer = get_producer()
            producer.send(settings.KAFKA_TOPIC_ORDERS_DLQ, dlq_data)
            producer.flush()

            logger.warning(
                f"⚠️  [{self.process_name}] Event sent to DLQ - Key: {self._idempotency_key(event)}"
            )

        except Exception as e:
            logger.error(f"💥 [{self.process_name}] Failed to send to DLQ: {e}", exc_info=True)

    def _handle_message(self, message):
        self.stats['received'] += 1

        try:
            event = json.loads(message.value.decode('utf-8'))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self.stats['failed'] += 1
            logger.error(f"❌ [{self.process_name}] Invalid JSON at offset {message.offset}: {e}")
            # Commit to skip the invalid message
            self.consumer.commit()
            return

        logger.debug(
            f"📨 [{self.process_name}] Received {event.get('type')} - "
            f"Partition: {message.partition}, Offset: {message.offset}"
        )

        if self._is_already_processed(event):
            self.stats['duplicates'] += 1
            self.consumer.commit()
            return

        if self._process_with_retry(event):
            self.stats['processed'] += 1
            self._mark_as_processed(event)
        else:
            self.stats['failed'] += 1
            self._send_to_dlq(event, f"Failed after {self.max_retries} attempts")
            logger.error(
                f"❌ [{self.process_name}] Processing failed permanently - Offset: {message.offset}"
            )
        self.consumer.commit()

    # ========================
    # LIFECYCLE
    # ========================

    def start(self):
        """Consume until stop() is called or the transport fails. Blocks."""
        logger.info(f"🚀 [{self.process_name}] Starting to consume from topic: {self.topic}")
        error = None

        try:
            self._initialize_consumer()
            while not self._stop_event.is_set():
                records = self.consumer.poll(timeout_ms=self.poll_timeout_ms)
                if not self._ready and self.consumer.assignment():
                    self._ready = True
                    logger.info(f"✅ [{self.process_name}] Partitions assigned")
                    self.on_ready()
                for messages in records.values():
                    for message in messages:
                        self._handle_message(message)

        except KeyboardInterrupt:
            logger.info(f"🛑 [{self.process_name}] Shutting down gracefully...")

        except Exception as e:
            error = e
            logger.error(f"💥 [{self.process_name}] Fatal error: {e}", exc_info=True)

        finally:
            self._log_statistics()
            self.close()
            self.on_stopped(error)

    def stop(self):
        self._stop_event.set()

    @property
    def stopping(self):
        return self._stop_event.is_set()

    def _log_statistics(self):
        handled = self.stats['received'] - self.stats['duplicates']
        rate = self.stats['processed'] / handled * 100 if handled else 100.0
        logger.info(
            f"\n{'='*70}\n"
            f"📊 [{self.process_name}] FINAL STATISTICS:\n"
            f"   Total events received: {self.stats['received']}\n"
            f"   ✅ Successfully processed: {self.stats['processed']}\n"
            f"   ⚠️  Duplicates skipped: {self.stats['duplicates']}\n"
            f"   ❌ Failed: {self.stats['failed']}\n"
            f"   Success rate: {rate:.1f}%\n"
            f"{'='*70}"
        )

    def close(self):
        if self.consumer:
            try:
                self.consumer.close()
                logger.info(f"✅ [{self.process_name}] Consumer closed successfully")
            except Exception as e:
                logger.error(f"❌ [{self.process_name}] Error closing consumer: {e}")
            finally:
                self.consumer = None
