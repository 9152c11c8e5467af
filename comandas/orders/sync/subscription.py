"""
Change Subscription Manager

Owns the one logical subscription to the orders change feed:
- routes insert / update / delete events into the LocalOrderCache
- reconnects 3s after any transport failure, forever
- forces reconnect + full resync when the surface comes back after being
  hidden for too long (events may have been missed while suspended)

All methods run on the dispatcher (see scheduler.py). Transport callbacks
arrive on the transport thread and are posted onto the dispatcher first.
"""
import logging
import time
from enum import Enum

from ..exceptions import MalformedChangeError
from .cache import COMPLETED, PENDING
from .items import is_aligned
from .store import DELETE, FAILURE_STATUSES, INSERT, SUBSCRIBED, UPDATE

logger = logging.getLogger(__name__)

RECONNECT_DELAY_SECONDS = 3.0
VISIBILITY_THRESHOLD_SECONDS = 10.0


class ConnectionStatus(Enum):
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    DISCONNECTED = 'disconnected'


def parse_order(payload, require_status=True):
    """
    Validate a change-feed row.

    Raises:
        MalformedChangeError: payload is not a usable order row
    """
    if not isinstance(payload, dict):
        raise MalformedChangeError(f"Expected a row, got {type(payload).__name__}")
    if not payload.get('id'):
        raise MalformedChangeError("Row without id")

    status = payload.get('status')
    if status is None and require_status:
        raise MalformedChangeError(f"Row {payload['id']} without status")
    if status is not None and status not in (PENDING, COMPLETED):
        raise MalformedChangeError(f"Row {payload['id']} has unknown status {status!r}")

    for field in ('items', 'item_status', 'extras'):
        value = payload.get(field)
        if value is not None and not isinstance(value, list):
            raise MalformedChangeError(f"Row {payload['id']}: {field} must be a list")

    if not is_aligned(payload):
        raise MalformedChangeError(f"Row {payload['id']}: item_status does not match items")

    return dict(payload)


class ChangeSubscriptionManager:
    def __init__(self, store, cache, scheduler, notifier, table='orders',
                 reconnect_delay=RECONNECT_DELAY_SECONDS,
                 visibility_threshold=VISIBILITY_THRESHOLD_SECONDS,
                 clock=time.monotonic):
        self.store = store
        self.cache = cache
        self.scheduler = scheduler
        self.notifier = notifier
        self.table = table
        self.reconnect_delay = reconnect_delay
        self.visibility_threshold = visibility_threshold
        self._clock = clock

        self.status = ConnectionStatus.DISCONNECTED
        self._handle = None
        self._token = None
        self._retry = None
        self._hidden_at = None
        self._resync_on_connect = False
        self._resync_generation = 0
        self._disposed = False
        self._status_listeners = []

    # ========================
    # STATUS
    # ========================

    def add_status_listener(self, listener):
        """Register `listener(status)`; returns a callable that removes it."""
        self._status_listeners.append(listener)

        def remove():
            if listener in self._status_listeners:
                self._status_listeners.remove(listener)

        return remove

    def _set_status(self, status):
        if self.status == status:
            return
        logger.info(f"📡 [Change Feed] {self.status.value} -> {status.value}")
        self.status = status
        for listener in list(self._status_listeners):
            try:
                listener(status)
            except Exception as e:
                logger.error(f"❌ [Change Feed] Status listener failed: {e}", exc_info=True)

    # ========================
    # CONNECT / TEARDOWN
    # ========================

    def connect(self):
        """(Re)subscribe. Any existing subscription and pending retry are dropped first."""
        if self._disposed:
            return

        self._cancel_retry()
        self._teardown()
        self._set_status(ConnectionStatus.CONNECTING)
        # A new subscription only delivers events from the moment it is live
        self._resync_on_connect = True

        token = object()
        self._token = token
        handlers = {
            INSERT: self._bind(token, INSERT),
            UPDATE: self._bind(token, UPDATE),
            DELETE: self._bind(token, DELETE),
        }

        def on_status(status, error=None):
            self.scheduler.post(self._on_status, token, status, error)

        try:
            self._handle = self.store.subscribe(self.table, handlers, on_status)
        except Exception as e:
            logger.error(f"❌ [Change Feed] Subscribe failed: {e}", exc_info=True)
            self._token = None
            self._handle_failure(str(e))

    def _bind(self, token, kind):
        def handler(row):
            self.scheduler.post(self._dispatch, token, kind, row)
        return handler

    def _teardown(self):
        handle = self._handle
        self._handle = None
        self._token = None
        if handle is None:
            return
        try:
            self.store.unsubscribe(handle)
        except Exception as e:
            logger.warning(f"⚠️  [Change Feed] Unsubscribe of {handle} failed: {e}")

    def _cancel_retry(self):
        if self._retry is not None:
            self._retry.cancel()
            self._retry = None

    def _schedule_retry(self):
        self._cancel_retry()
        logger.info(f"⏳ [Change Feed] Reconnecting in {self.reconnect_delay}s...")
        self._retry = self.scheduler.call_later(self.reconnect_delay, self._retry_connect)

    def _retry_connect(self):
        self._retry = None
        self.connect()

    def dispose(self):
        """Stop for good: unsubscribe, cancel the retry timer, ignore late callbacks."""
        if self._disposed:
            return
        self._disposed = True
        self._cancel_retry()
        self._teardown()
        self._set_status(ConnectionStatus.DISCONNECTED)
        self._status_listeners.clear()
        logger.info("🛑 [Change Feed] Disposed")

    # ========================
    # TRANSPORT CALLBACKS
    # ========================

    def _is_current(self, token):
        return not self._disposed and token is not None and token is self._token

    def _on_status(self, token, status, error=None):
        if not self._is_current(token):
            logger.debug(f"[Change Feed] Ignoring {status} from a superseded subscription")
            return

        if status == SUBSCRIBED:
            self._set_status(ConnectionStatus.CONNECTED)
            if self._resync_on_connect:
                self._resync_on_connect = False
                self.resync()
        elif status in FAILURE_STATUSES:
            logger.warning(f"⚠️  [Change Feed] Transport reported {status}: {error or '-'}")
            self._handle_failure(error)
        else:
            logger.warning(f"⚠️  [Change Feed] Unknown transport status {status!r}")

    def _handle_failure(self, error=None):
        self._set_status(ConnectionStatus.DISCONNECTED)
        self._schedule_retry()

    def _dispatch(self, token, kind, row):
        if not self._is_current(token):
            return
        try:
            if kind == INSERT:
                self._on_insert(parse_order(row))
            elif kind == UPDATE:
                self._on_update(parse_order(row))
            elif kind == DELETE:
                self._on_delete(parse_order(row, require_status=False))
        except MalformedChangeError as e:
            logger.warning(f"⚠️  [Change Feed] Dropping malformed {kind} event: {e}")

    def _on_insert(self, row):
        if row['status'] != PENDING:
            self.cache.apply_row(row)
            return
        if self.cache.upsert_pending(row):
            self.notifier.new_order(row)

    def _on_update(self, row):
        outcome = self.cache.apply_row(row)
        logger.debug(f"[Change Feed] Update {row['id']}: {outcome}")

    def _on_delete(self, row):
        self.cache.remove(row['id'])

    # ========================
    # VISIBILITY / RESYNC
    # ========================

    def on_visibility_change(self, visible, now=None):
        """
        Hidden -> visible after more than `visibility_threshold` seconds forces
        a reconnect and a full resync.
        """
        if self._disposed:
            return
        now = self._clock() if now is None else now

        if not visible:
            if self._hidden_at is None:
                self._hidden_at = now
            return

        if self._hidden_at is None:
            return
        hidden_for = now - self._hidden_at
        self._hidden_at = None

        if hidden_for > self.visibility_threshold:
            logger.info(f"👀 [Change Feed] Visible again after {hidden_for:.1f}s, resyncing")
            self.connect()
            self.resync()

    def resync(self):
        """Fetch both collections from the store and replace the cache contents."""
        if self._disposed:
            return
        self._resync_generation += 1
        generation = self._resync_generation
        self.scheduler.run_io(
            self._fetch_snapshot,
            lambda result, error: self._on_snapshot(generation, result, error),
        )

    def _fetch_snapshot(self):
        pending = self.store.select({'status': PENDING}, order_by='-created_at')
        completed = self.store.select({'status': COMPLETED}, order_by='-created_at')
        return pending, completed

    def _on_snapshot(self, generation, result, error):
        if self._disposed or generation != self._resync_generation:
            return
        if error is not None:
            logger.error(f"❌ [Change Feed] Resync failed: {error}")
            self.notifier.error('No se pudieron recargar los pedidos')
            return

        pending, completed = result
        self.cache.replace_all(self._valid_rows(pending), self._valid_rows(completed))
        logger.info(
            f"🔄 [Change Feed] Resynced {len(pending)} pending / {len(completed)} completed"
        )

    def _valid_rows(self, rows):
        valid = []
        for row in rows:
            try:
                valid.append(parse_order(row))
            except MalformedChangeError as e:
                logger.warning(f"⚠️  [Change Feed] Skipping malformed row: {e}")
        return valid
