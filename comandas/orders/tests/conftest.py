import copy
import itertools
from concurrent.futures import Future
from datetime import datetime, timedelta, timezone

import pytest

from orders.exceptions import OrderNotFound, RemoteStoreError
from orders.sync.engine import OrderSyncEngine
from orders.sync.notifier import Notifier
from orders.sync.scheduler import Scheduler
from orders.sync.store import DELETE, INSERT, SUBSCRIBED, UPDATE, RemoteOrderStore, SubscriptionHandle

_ids = itertools.count(1)
BASE_TIME = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)


def make_order(**overrides):
    n = next(_ids)
    order = {
        'id': f"order-{n}",
        'order_number': n,
        'customer_name': 'Juan',
        'phone': '1155550000',
        'amount': 20000.0,
        'payment_method': 'efectivo',
        'scheduled_time': None,
        'delivery_address': 'Av. Siempre Viva 742',
        'cash_tendered': None,
        'change_due': None,
        'items': [
            {'product': 'Cheese', 'quantity': 1, 'size': 'doble', 'combo': True},
            {'product': 'Bacon', 'quantity': 2, 'size': 'simple', 'combo': False},
        ],
        'item_status': [
            {'product': 'Cheese', 'quantity': 1, 'size': 'doble', 'combo': True, 'completed': False},
            {'product': 'Bacon', 'quantity': 2, 'size': 'simple', 'combo': False, 'completed': False},
        ],
        'extras': None,
        'courier_departed': False,
        'status': 'pending',
        'created_at': (BASE_TIME + timedelta(seconds=n)).isoformat(),
    }
    order.update(overrides)
    return order


class FakeTimer:
    def __init__(self, delay, function):
        self.delay = delay
        self.function = function
        self.started = False
        self.cancelled = False
        self.daemon = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function()


class FakeTimers:
    """timer_factory that records timers so tests decide when they expire."""

    def __init__(self):
        self.timers = []

    def __call__(self, delay, function):
        timer = FakeTimer(delay, function)
        self.timers.append(timer)
        return timer

    @property
    def active(self):
        return [t for t in self.timers if not t.cancelled]

    def fire_all(self):
        for timer in list(self.active):
            timer.fire()
            timer.cancelled = True


class DeferredExecutor:
    """Executor whose jobs only run when the test says so."""

    def __init__(self):
        self.jobs = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.jobs.append((future, fn, args, kwargs))
        return future

    def run_all(self):
        jobs, self.jobs = self.jobs, []
        for future, fn, args, kwargs in jobs:
            try:
                future.set_result(fn(*args, **kwargs))
            except Exception as e:
                future.set_exception(e)
        return len(jobs)

    def shutdown(self, wait=True):
        pass


class FakeRemoteStore(RemoteOrderStore):
    def __init__(self, rows=()):
        self.rows = {row['id']: copy.deepcopy(row) for row in rows}
        self.subscriptions = []
        self.unsubscribed = []
        self.updates = []
        self.fail_updates = False
        self.fail_selects = False
        self.fail_subscribe = False

    # store API

    def select(self, filters=None, order_by='-created_at'):
        if self.fail_selects:
            raise RemoteStoreError("select failed")
        rows = [
            copy.deepcopy(row) for row in self.rows.values()
            if all(row.get(k) == v for k, v in (filters or {}).items())
        ]
        field = order_by.lstrip('-')
        return sorted(rows, key=lambda r: r.get(field) or '', reverse=order_by.startswith('-'))

    def update(self, order_id, fields):
        self.updates.append((order_id, fields))
        if self.fail_updates:
            raise RemoteStoreError("network down")
        if order_id not in self.rows:
            raise OrderNotFound(order_id)
        self.rows[order_id].update(copy.deepcopy(fields))
        return copy.deepcopy(self.rows[order_id])

    def delete(self, order_id):
        if order_id not in self.rows:
            raise OrderNotFound(order_id)
        return self.rows.pop(order_id)

    def subscribe(self, table, handlers, on_status):
        if self.fail_subscribe:
            raise RemoteStoreError("cannot subscribe")
        handle = SubscriptionHandle(table)
        self.subscriptions.append((handle, handlers, on_status))
        return handle

    def unsubscribe(self, handle):
        self.unsubscribed.append(handle)

    # test helpers, acting on the latest subscription

    @property
    def live(self):
        handle, handlers, on_status = self.subscriptions[-1]
        return handlers, on_status

    def confirm(self, status=SUBSCRIBED, error=None):
        self.live[1](status, error)

    def emit_insert(self, row):
        self.rows[row['id']] = copy.deepcopy(row)
        self.live[0][INSERT](copy.deepcopy(row))

    def emit_update(self, row):
        self.rows[row['id']] = copy.deepcopy(row)
        self.live[0][UPDATE](copy.deepcopy(row))

    def emit_delete(self, order_id):
        row = self.rows.pop(order_id, {'id': order_id})
        self.live[0][DELETE](row)


class RecordingNotifier(Notifier):
    def __init__(self):
        self.new_orders = []
        self.successes = []
        self.errors = []

    def new_order(self, order):
        self.new_orders.append(order)

    def success(self, message):
        self.successes.append(message)

    def error(self, message):
        self.errors.append(message)


class RecordingOutbound:
    def __init__(self):
        self.printed = []
        self.notifications = []
        self.fail = False

    def print_tickets(self, order, kinds=None):
        self.printed.append((order['id'], kinds))

    def notify_status(self, payload):
        if self.fail:
            raise RuntimeError("broker down")
        self.notifications.append(payload)


class Harness:
    """Engine plus its fakes, with a helper that runs everything to quiescence."""

    def __init__(self, rows=()):
        self.timers = FakeTimers()
        self.executor = DeferredExecutor()
        self.scheduler = Scheduler(executor=self.executor, timer_factory=self.timers)
        self.store = FakeRemoteStore(rows)
        self.notifier = RecordingNotifier()
        self.outbound = RecordingOutbound()
        self.clock_value = 1000.0
        self.engine = OrderSyncEngine(
            self.store,
            scheduler=self.scheduler,
            notifier=self.notifier,
            outbound=self.outbound,
            clock=lambda: self.clock_value,
        )
        self.cache = self.engine.cache

    def settle(self):
        """Run dispatcher tasks and deferred I/O until nothing is left."""
        while self.scheduler.drain() + self.executor.run_all():
            pass

    def start(self):
        """init(), subscription confirmed, initial fetches done."""
        self.engine.init()
        self.settle()
        self.store.confirm()
        self.settle()


@pytest.fixture
def harness():
    return Harness()


@pytest.fixture
def started():
    def build(rows=()):
        h = Harness(rows)
        h.start()
        return h
    return build


@pytest.fixture(autouse=True)
def no_change_feed(settings):
    """Model signals stay quiet unless a test turns the feed back on."""
    settings.ORDER_CHANGE_FEED_ENABLED = False
