"""
OrderSyncEngine: one explicitly constructed instance owning the cache, the
subscription, the reconciler and the aggregator.

Public methods are safe to call from any thread: they only post work onto the
dispatcher. Reads (engine.cache.pending, engine.aggregator...) see whole
snapshots because the cache swaps its collections in one step.
"""
import logging
import time

from .aggregator import OrderAggregator
from .cache import LocalOrderCache
from .notifier import LoggingNotifier
from .reconciler import Reconciler
from .scheduler import Scheduler
from .subscription import (
    RECONNECT_DELAY_SECONDS,
    VISIBILITY_THRESHOLD_SECONDS,
    ChangeSubscriptionManager,
)

logger = logging.getLogger(__name__)


class OrderSyncEngine:
    def __init__(self, store, scheduler=None, notifier=None, outbound=None,
                 io_workers=4,
                 reconnect_delay=RECONNECT_DELAY_SECONDS,
                 visibility_threshold=VISIBILITY_THRESHOLD_SECONDS,
                 clock=time.monotonic):
        self._owns_scheduler = scheduler is None
        self.scheduler = scheduler or Scheduler(max_workers=io_workers)
        self.store = store
        self.notifier = notifier or LoggingNotifier()
        self.cache = LocalOrderCache()
        self.subscription = ChangeSubscriptionManager(
            store, self.cache, self.scheduler, self.notifier,
            reconnect_delay=reconnect_delay,
            visibility_threshold=visibility_threshold,
            clock=clock,
        )
        self.reconciler = Reconciler(store, self.cache, self.scheduler, self.notifier, outbound)
        self.aggregator = OrderAggregator(self.cache)
        self.disposed = False

    # ========================
    # LIFECYCLE
    # ========================

    def init(self):
        """Subscribe and load the current orders."""
        self.scheduler.post(self._init)

    def _init(self):
        logger.info("🚀 [Sync Engine] Starting")
        self.subscription.connect()
        self.subscription.resync()

    def dispose(self):
        self.scheduler.post(self._dispose)

    def _dispose(self):
        if self.disposed:
            return
        self.disposed = True
        self.subscription.dispose()
        self.reconciler.dispose()
        logger.info("🛑 [Sync Engine] Disposed")
        if self._owns_scheduler:
            self.scheduler.close()

    def run_forever(self):
        self.scheduler.run_forever()

    @property
    def connection_status(self):
        return self.subscription.status

    # ========================
    # ACTIONS
    # ========================

    def toggle_item(self, order_id, index):
        self.scheduler.post(self.reconciler.toggle_item, order_id, index)

    def complete_order(self, order_id):
        self.scheduler.post(self.reconciler.complete_order, order_id)

    def mark_courier_departed(self, order_id):
        self.scheduler.post(self.reconciler.mark_courier_departed, order_id)

    def reprint(self, order_id, kinds=None):
        self.scheduler.post(self.reconciler.reprint, order_id, kinds)

    def on_visibility_change(self, visible, now=None):
        self.scheduler.post(self.subscription.on_visibility_change, visible, now)

    def resync(self):
        self.scheduler.post(self.subscription.resync)
