"""
Kafka producer for the orders change feed:
- Circuit Breaker pattern
- tenacity retry with exponential backoff
- Dead Letter Queue for events that could not be published
"""
from kafka import KafkaProducer
from kafka.errors import KafkaError, KafkaTimeoutError, NoBrokersAvailable
import json
import logging
import uuid
from django.conf import settings
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential
from datetime import datetime, timedelta
from enum import Enum

logger = logging.getLogger(__name__)

EVENT_VERSION = '1.0'

# Singleton producer instance
_producer = None


class CircuitState(Enum):
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Kafka down, fail fast
    HALF_OPEN = "half_open"  # One trial attempt after timeout


class CircuitOpenError(Exception):
    """Raised instead of publishing while the breaker is open."""


class CircuitBreaker:
    """
    Stops hammering Kafka while it is down.

    States:
    - CLOSED: everything goes through
    - OPEN: fail fast until `timeout` seconds passed since the last failure
    - HALF_OPEN: let one attempt through; success closes, failure re-opens
    """

    def __init__(self, failure_threshold=5, timeout=60):
        """
        Args:
            failure_threshold: consecutive failures before opening
            timeout: seconds to wait before a half-open attempt
        """
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.failure_count = 0
        self.last_failure_time = None
        self.state = CircuitState.CLOSED

    def record_success(self):
        if self.state != CircuitState.CLOSED:
            logger.info("[Circuit Breaker] ✅ Success recorded, circuit CLOSED")
        self.failure_count = 0
        self.state = CircuitState.CLOSED

    def record_failure(self):
        self.failure_count += 1
        self.last_failure_time = datetime.now()

        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            self.state = CircuitState.OPEN
            logger.error(
                f"[Circuit Breaker] 🔴 Circuit OPENED after {self.failure_count} failures. "
                f"Will retry after {self.timeout}s"
            )
        else:
            logger.warning(
                f"[Circuit Breaker] ⚠️  Failure {self.failure_count}/{self.failure_threshold}"
            )

    def can_attempt(self):
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            if datetime.now() - self.last_failure_time > timedelta(seconds=self.timeout):
                self.state = CircuitState.HALF_OPEN
                logger.info("[Circuit Breaker] 🟡 Circuit HALF_OPEN, trying again...")
                return True
            return False

        # HALF_OPEN
        return True

    def status(self):
        return {
            'state': self.state.value,
            'failure_count': self.failure_count,
            'failure_threshold': self.failure_threshold,
            'last_failure_time': self.last_failure_time.isoformat()
                if self.last_failure_time else None,
            'timeout': self.timeout,
        }


_circuit_breaker = CircuitBreaker(failure_threshold=3, timeout=30)


def get_producer():
    """Get or create the Kafka producer instance"""
    global _producer

    if _producer is None:
        try:
            _producer = KafkaProducer(
                bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
                value_serializer=lambda v: json.dumps(v).encode('utf-8'),
                key_serializer=lambda k: k.encode('utf-8') if k else None,
                acks='all',
                retries=3,
                max_in_flight_requests_per_connection=1,  # per-order ordering
                compression_type='gzip',
                request_timeout_ms=10000,
            )
            logger.info("✅ Kafka producer initialized successfully")

        except NoBrokersAvailable:
            logger.error("❌ No Kafka brokers available!")
            raise

        except Exception as e:
            logger.error(f"❌ Failed to initialize Kafka producer: {e}")
            raise

    return _producer


def build_change_event(kind, table, new=None, old=None):
    """
    Args:
        kind: 'insert' | 'update' | 'delete'
        table: source table ('orders')
        new: row after the change (None for delete)
        old: row before the change; only the id is guaranteed

    Returns:
        dict: JSON-safe change event
    """
    return {
        'event_id': str(uuid.uuid4()),
        'type': kind,
        'table': table,
        'new': new,
        'old': old,
        'version': EVENT_VERSION,
        'timestamp': datetime.now().isoformat(),
    }


def _event_key(event):
    row = event.get('new') or event.get('old') or {}
    return row.get('id')


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type(CircuitOpenError),
    reraise=True
)
def publish_change_event(event, topic=None):
    """
    Publish one change event, keyed by order id so one order's events stay
    ordered within a partition.

    Returns:
        dict: topic / partition / offset of the stored record

    Raises:
        CircuitOpenError: breaker is open, nothing was sent
        KafkaError: send failed after the retries
    """
    if topic is None:
        topic = settings.KAFKA_TOPIC_ORDER_CHANGES

    if not _circuit_breaker.can_attempt():
        logger.error("🔴 Circuit breaker is OPEN. Kafka is currently unavailable.")
        raise CircuitOpenError("Circuit breaker is OPEN")

    try:
        producer = get_producer()

        logger.info(
            f"📤 [Producer] Sending {event['type']} event - "
            f"Topic: {topic}, Order ID: {_event_key(event)}"
        )
        record_metadata = producer.send(topic, value=event, key=_event_key(event)).get(timeout=60)

    except KafkaTimeoutError:
        _circuit_breaker.record_failure()
        logger.error(f"⏱️  [Producer] Kafka timeout - Event: {event.get('event_id')}", exc_info=True)
        raise

    except KafkaError:
        _circuit_breaker.record_failure()
        logger.error(f"❌ [Producer] Kafka error - Event: {event.get('event_id')}", exc_info=True)
        raise

    _circuit_breaker.record_success()
    logger.info(
        f"✅ [Producer] Event published - "
        f"Partition: {record_metadata.partition}, "
        f"Offset: {record_metadata.offset}, "
        f"Order ID: {_event_key(event)}"
    )
    return {
        'topic': record_metadata.topic,
        'partition': record_metadata.partition,
        'offset': record_metadata.offset,
    }


def publish_to_dlq(event, error_message):
    """Park an event that could not be published on the Dead Letter Queue."""
    try:
        dlq_data = {
            **event,
            'error': error_message,
            'failed_at': datetime.now().isoformat(),
            'original_topic': settings.KAFKA_TOPIC_ORDER_CHANGES,
        }

        producer = get_producer()
        producer.send(settings.KAFKA_TOPIC_ORDERS_DLQ, dlq_data)
        producer.flush()

        logger.warning(
            f"⚠️  [DLQ] Event sent to Dead Letter Queue - "
            f"Order ID: {_event_key(event)}, Error: {error_message}"
        )

    except Exception as e:
        logger.error(f"💥 [DLQ] Failed to send event to DLQ: {e}", exc_info=True)


def get_circuit_breaker_status():
    return _circuit_breaker.status()


def close_producer():
    """Close the producer connection"""
    global _producer
    if _producer is not None:
        try:
            _producer.close()
            logger.info("✅ Kafka producer closed successfully")
        except Exception as e:
            logger.error(f"❌ Error closing Kafka producer: {e}")
        finally:
            _producer = None
