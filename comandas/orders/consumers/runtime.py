"""
Helpers shared by the console runners (kitchen display, analytics).
"""
import logging
import threading
import time

from django.conf import settings

from ..kafka_producer import close_producer
from ..outbound import OutboundQueue
from ..store import DjangoOrderStore
from ..sync.engine import OrderSyncEngine

logger = logging.getLogger(__name__)


def build_engine(store=None, notifier=None, outbound=None):
    """OrderSyncEngine wired to the ORM store, Kafka feed and Celery outbound queue."""
    return OrderSyncEngine(
        store or DjangoOrderStore(),
        notifier=notifier,
        outbound=outbound or OutboundQueue(),
        io_workers=settings.ORDER_SYNC_IO_WORKERS,
        reconnect_delay=settings.ORDER_SYNC_RECONNECT_DELAY_SECONDS,
        visibility_threshold=settings.ORDER_SYNC_VISIBILITY_THRESHOLD_SECONDS,
        clock=time.time,
    )


class SuspendWatchdog:
    """
    A console process has no hidden/visible state, but it can be suspended
    (laptop sleep, SIGSTOP, a stalled VM). A wall-clock gap between two ticks
    is reported to the engine as hidden-then-visible.
    """

    def __init__(self, engine, interval=1.0, clock=time.time):
        self.engine = engine
        self.interval = interval
        self._clock = clock
        self._last_tick = None
        self._stop_event = threading.Event()
        self._thread = None

    def tick(self):
        now = self._clock()
        last = self._last_tick
        self._last_tick = now
        if last is None:
            return False
        if now - last <= self.interval * 2:
            return False
        logger.warning(f"😴 [Watchdog] Process was suspended for ~{now - last:.0f}s")
        self.engine.on_visibility_change(False, now=last)
        self.engine.on_visibility_change(True, now=now)
        return True

    def _run(self):
        while not self._stop_event.wait(self.interval):
            self.tick()

    def start(self):
        self._last_tick = self._clock()
        self._thread = threading.Thread(target=self._run, name='suspend-watchdog', daemon=True)
        self._thread.start()

    def stop(self):
        self._stop_event.set()


def run(engine, watchdog=None):
    """Run the engine dispatcher in the foreground until Ctrl+C."""
    watchdog = watchdog or SuspendWatchdog(engine)
    engine.init()
    watchdog.start()
    try:
        engine.run_forever()
    except KeyboardInterrupt:
        logger.info("🛑 Shutting down gracefully...")
    finally:
        watchdog.stop()
        engine.dispose()
        # dispose() is queued; run it and let the engine close its scheduler
        engine.scheduler.drain()
        # the feed threads may have opened the producer for DLQ writes
        close_producer()
