"""
Local Order Cache

In-memory mirror of the remote orders table, split into two collections:
- pending: newest first (dashboard order)
- completed: newest first

Rules:
- An order id lives in at most one collection, and the collection always
  matches the order's status.
- Every mutation builds new tuples and swaps them in as one step, so a reader
  never sees a half-applied change.
- Mutations only happen on the dispatcher (see scheduler.py); there are no locks.
"""
import logging

logger = logging.getLogger(__name__)

PENDING = 'pending'
COMPLETED = 'completed'

# apply_row outcomes
INSERTED = 'inserted'
MERGED = 'merged'
PROMOTED = 'promoted'
DEMOTED = 'demoted'
UNCHANGED = 'unchanged'


def _without(collection, order_id):
    return tuple(o for o in collection if o['id'] != order_id)


def _replace(collection, order):
    return tuple(order if o['id'] == order['id'] else o for o in collection)


def _insert_newest_first(collection, order):
    """Put a returning order back where its created_at belongs."""
    created = order.get('created_at') or ''
    for index, other in enumerate(collection):
        if (other.get('created_at') or '') <= created:
            return collection[:index] + (order,) + collection[index:]
    return collection + (order,)


class LocalOrderCache:
    def __init__(self):
        self._pending = ()
        self._completed = ()
        self.version = 0
        self._listeners = []

    # ========================
    # READS
    # ========================

    @property
    def pending(self):
        return list(self._pending)

    @property
    def completed(self):
        return list(self._completed)

    def all_orders(self):
        return list(self._pending) + list(self._completed)

    def location(self, order_id):
        """Return PENDING, COMPLETED or None."""
        if any(o['id'] == order_id for o in self._pending):
            return PENDING
        if any(o['id'] == order_id for o in self._completed):
            return COMPLETED
        return None

    def get(self, order_id):
        for order in self._pending:
            if order['id'] == order_id:
                return order
        for order in self._completed:
            if order['id'] == order_id:
                return order
        return None

    def kitchen_queue(self):
        """Pending orders oldest first (FIFO). Read-side only."""
        return sorted(self._pending, key=lambda o: o.get('created_at') or '')

    # ========================
    # LISTENERS
    # ========================

    def add_listener(self, listener):
        """Register `listener(cache)`; returns a callable that removes it."""
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _commit(self, pending, completed):
        self._pending = pending
        self._completed = completed
        self.version += 1
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"❌ [Order Cache] Listener failed: {e}", exc_info=True)

    # ========================
    # MUTATIONS
    # ========================

    def upsert_pending(self, order):
        """Insert at the front unless the id is already cached. Returns True if inserted."""
        if self.location(order['id']) is not None:
            logger.debug(f"[Order Cache] Order {order['id']} already cached, insert skipped")
            return False
        self._commit((dict(order),) + self._pending, self._completed)
        return True

    def merge_update(self, order_id, fields):
        """
        Shallow-merge `fields` into the cached order, wherever it lives.

        Unspecified fields are preserved. A `status` change moves the order to
        the matching collection. Returns False when the id is unknown.
        """
        existing = self.get(order_id)
        if existing is None:
            return False
        self._place({**existing, **fields})
        return True

    def promote_to_completed(self, order_id):
        """Move a pending order to the front of completed. No-op unless it is pending."""
        order = next((o for o in self._pending if o['id'] == order_id), None)
        if order is None:
            logger.debug(f"[Order Cache] Order {order_id} not pending, promotion skipped")
            return False
        completed = {**order, 'status': COMPLETED}
        self._commit(_without(self._pending, order_id), (completed,) + self._completed)
        return True

    def remove(self, order_id):
        """Drop the id from both collections. Returns True if something was removed."""
        if self.location(order_id) is None:
            return False
        self._commit(_without(self._pending, order_id), _without(self._completed, order_id))
        return True

    def apply_row(self, row):
        """
        Merge a server-confirmed row; membership follows row['status'].

        Returns one of INSERTED, MERGED, PROMOTED, DEMOTED, UNCHANGED.
        """
        existing = self.get(row['id'])
        if existing is None:
            order = dict(row)
            if order.get('status') == COMPLETED:
                self._commit(self._pending, (order,) + self._completed)
            else:
                self._commit((order,) + self._pending, self._completed)
            return INSERTED
        return self._place({**existing, **row})

    def replace_all(self, pending, completed):
        """Swap in a full snapshot (used after a resync fetch)."""
        pending = tuple(dict(o) for o in pending)
        pending_ids = {o['id'] for o in pending}
        completed = tuple(dict(o) for o in completed if o['id'] not in pending_ids)
        self._commit(pending, completed)

    def _place(self, order):
        order_id = order['id']
        current = self.location(order_id)
        target = COMPLETED if order.get('status') == COMPLETED else PENDING

        if current == target:
            if self.get(order_id) == order:
                return UNCHANGED
            if target == PENDING:
                self._commit(_replace(self._pending, order), self._completed)
            else:
                self._commit(self._pending, _replace(self._completed, order))
            return MERGED

        if target == COMPLETED:
            self._commit(_without(self._pending, order_id), (order,) + self._completed)
            return PROMOTED
        self._commit(_insert_newest_first(self._pending, order), _without(self._completed, order_id))
        return DEMOTED
