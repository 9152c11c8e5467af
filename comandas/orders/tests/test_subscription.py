import pytest

from orders.exceptions import MalformedChangeError
from orders.sync.cache import COMPLETED
from orders.sync.store import CHANNEL_ERROR, CLOSED, SUBSCRIBED, TIMED_OUT
from orders.sync.subscription import ConnectionStatus, parse_order

from .conftest import make_order


def ids(orders):
    return [o['id'] for o in orders]


class TestParseOrder:
    def test_accepts_a_row(self):
        row = make_order()
        assert parse_order(row) == row
        assert parse_order(row) is not row

    @pytest.mark.parametrize('payload', [
        None,
        'order',
        {},
        {'id': ''},
        {'id': 'x'},
        {'id': 'x', 'status': 'cancelled'},
        {'id': 'x', 'status': 'pending', 'items': 'burger'},
        {'id': 'x', 'status': 'pending', 'item_status': {'0': True}},
        {'id': 'x', 'status': 'pending', 'items': [{}, {}], 'item_status': [{}, {}, {}]},
    ])
    def test_rejects_malformed(self, payload):
        with pytest.raises(MalformedChangeError):
            parse_order(payload)

    def test_delete_rows_only_need_an_id(self):
        assert parse_order({'id': 'x'}, require_status=False) == {'id': 'x'}


class TestConnect:
    def test_start_loads_orders_and_connects(self, started):
        pending, done = make_order(), make_order(status=COMPLETED)
        h = started([pending, done])

        assert h.engine.connection_status == ConnectionStatus.CONNECTED
        assert ids(h.cache.pending) == [pending['id']]
        assert ids(h.cache.completed) == [done['id']]
        assert len(h.store.subscriptions) == 1

    def test_connecting_until_transport_confirms(self, harness):
        harness.engine.init()
        harness.settle()

        assert harness.engine.connection_status == ConnectionStatus.CONNECTING

        harness.store.confirm(SUBSCRIBED)
        harness.settle()
        assert harness.engine.connection_status == ConnectionStatus.CONNECTED

    def test_connect_is_idempotent(self, started):
        h = started()
        first_handle = h.store.subscriptions[0][0]

        h.engine.subscription.connect()
        h.settle()

        assert len(h.store.subscriptions) == 2
        assert h.store.unsubscribed == [first_handle]

    def test_subscribe_failure_schedules_retry(self, harness):
        harness.store.fail_subscribe = True
        harness.engine.init()
        harness.settle()

        assert harness.engine.connection_status == ConnectionStatus.DISCONNECTED
        assert [t.delay for t in harness.timers.active] == [3.0]

        harness.store.fail_subscribe = False
        harness.timers.fire_all()
        harness.settle()
        assert len(harness.store.subscriptions) == 1


class TestEvents:
    def test_insert_pending_notifies_once(self, started):
        h = started()
        order = make_order()

        h.store.emit_insert(order)
        h.store.emit_insert(order)
        h.settle()

        assert ids(h.cache.pending) == [order['id']]
        assert ids(h.notifier.new_orders) == [order['id']]

    def test_insert_of_already_loaded_order_is_silent(self, started):
        order = make_order()
        h = started([order])

        h.store.emit_insert(order)
        h.settle()

        assert h.notifier.new_orders == []
        assert len(h.cache.pending) == 1

    def test_completed_update_moves_order_once(self, started):
        order = make_order()
        h = started([order])
        row = dict(order, status=COMPLETED)

        h.store.emit_update(row)
        h.settle()
        version = h.cache.version
        h.store.emit_update(row)
        h.settle()

        assert h.cache.pending == []
        assert ids(h.cache.completed) == [order['id']]
        assert h.cache.version == version

    def test_update_for_unknown_pending_order_inserts_it(self, started):
        h = started()
        order = make_order()

        h.store.emit_update(order)
        h.settle()

        assert ids(h.cache.pending) == [order['id']]
        assert h.notifier.new_orders == []

    def test_delete_removes(self, started):
        order = make_order()
        h = started([order])

        h.store.emit_delete(order['id'])
        h.settle()

        assert h.cache.all_orders() == []

    def test_malformed_events_are_dropped(self, started):
        order = make_order()
        h = started([order])
        version = h.cache.version
        handlers, _ = h.store.live

        handlers['insert']({'status': 'pending'})
        handlers['update']({'id': order['id'], 'status': 'lost'})
        handlers['update']('not a row')
        handlers['delete'](None)
        h.settle()

        assert h.cache.version == version
        assert ids(h.cache.pending) == [order['id']]

    def test_misaligned_item_status_is_dropped(self, started):
        h = started()
        order = make_order()
        order['item_status'] = order['item_status'] + [dict(order['item_status'][0])]

        h.store.emit_insert(order)
        h.settle()

        assert h.cache.pending == []
        assert h.notifier.new_orders == []


class TestReconnect:
    @pytest.mark.parametrize('status', [CHANNEL_ERROR, TIMED_OUT, CLOSED])
    def test_failure_retries_after_three_seconds(self, started, status):
        h = started()

        h.store.confirm(status, 'boom')
        h.settle()

        assert h.engine.connection_status == ConnectionStatus.DISCONNECTED
        assert [t.delay for t in h.timers.active] == [3.0]

        h.timers.fire_all()
        h.settle()

        assert len(h.store.subscriptions) == 2
        assert h.engine.connection_status == ConnectionStatus.CONNECTING

    def test_only_one_retry_is_pending(self, started):
        h = started()

        h.store.confirm(CHANNEL_ERROR)
        h.settle()
        h.store.confirm(TIMED_OUT)
        h.settle()

        assert len(h.timers.active) == 1

    def test_retries_forever(self, started):
        h = started()

        for _ in range(5):
            h.store.confirm(CHANNEL_ERROR)
            h.settle()
            h.timers.fire_all()
            h.settle()

        assert len(h.store.subscriptions) == 6

    def test_catch_up_after_reconnect(self, started):
        a, b = make_order(), make_order()
        h = started([a, b])

        h.store.confirm(CHANNEL_ERROR)
        h.settle()

        # Changes while disconnected: no events delivered
        c = make_order()
        h.store.rows[c['id']] = c
        h.store.rows[a['id']]['status'] = COMPLETED
        del h.store.rows[b['id']]

        h.timers.fire_all()
        h.settle()
        h.store.confirm(SUBSCRIBED)
        h.settle()

        assert h.engine.connection_status == ConnectionStatus.CONNECTED
        assert ids(h.cache.pending) == [c['id']]
        assert ids(h.cache.completed) == [a['id']]

    def test_superseded_subscription_is_ignored(self, started):
        h = started()
        h.engine.subscription.connect()
        h.settle()
        old_handlers, old_status = h.store.subscriptions[0][1], h.store.subscriptions[0][2]

        old_status(CHANNEL_ERROR, 'late')
        old_handlers['insert'](make_order())
        h.settle()

        assert h.timers.active == []
        assert h.cache.pending == []
        assert h.engine.connection_status == ConnectionStatus.CONNECTING


class TestVisibility:
    def test_short_absence_does_nothing(self, started):
        h = started()

        h.engine.on_visibility_change(False, now=1000.0)
        h.engine.on_visibility_change(True, now=1010.0)
        h.settle()

        assert len(h.store.subscriptions) == 1

    def test_long_absence_reconnects_and_resyncs(self, started):
        h = started()
        missed = make_order()
        h.store.rows[missed['id']] = missed

        h.engine.on_visibility_change(False, now=1000.0)
        h.engine.on_visibility_change(True, now=1010.5)
        h.settle()

        assert len(h.store.subscriptions) == 2
        assert ids(h.cache.pending) == [missed['id']]

    def test_changes_before_the_new_feed_is_live_are_caught_up(self, started):
        h = started()

        h.engine.on_visibility_change(False, now=1000.0)
        h.engine.on_visibility_change(True, now=1020.0)
        h.settle()
        # written after the early fetch, before the new subscription is assigned
        late = make_order()
        h.store.rows[late['id']] = late
        h.store.confirm()
        h.settle()

        assert h.engine.connection_status == ConnectionStatus.CONNECTED
        assert ids(h.cache.pending) == [late['id']]

    def test_uses_the_clock_when_no_time_is_given(self, started):
        h = started()

        h.engine.on_visibility_change(False)
        h.settle()
        h.clock_value += 30
        h.engine.on_visibility_change(True)
        h.settle()

        assert len(h.store.subscriptions) == 2

    def test_visible_without_hidden_is_ignored(self, started):
        h = started()

        h.engine.on_visibility_change(True, now=5000.0)
        h.settle()

        assert len(h.store.subscriptions) == 1


class TestResyncAndDispose:
    def test_resync_failure_keeps_cache_and_reports(self, started):
        order = make_order()
        h = started([order])
        h.store.fail_selects = True

        h.engine.resync()
        h.settle()

        assert ids(h.cache.pending) == [order['id']]
        assert h.notifier.errors == ['No se pudieron recargar los pedidos']

    def test_resync_skips_malformed_rows(self, started):
        good = make_order()
        h = started([good])
        h.store.rows['bad'] = {'id': 'bad', 'status': 'pending', 'items': 'x'}

        h.engine.resync()
        h.settle()

        assert ids(h.cache.pending) == [good['id']]

    def test_dispose_stops_everything(self, started):
        h = started()
        h.store.confirm(CHANNEL_ERROR)
        h.settle()
        timer = h.timers.active[0]
        handlers, on_status = h.store.live

        h.engine.dispose()
        h.settle()

        assert timer.cancelled
        assert h.store.unsubscribed == [h.store.subscriptions[0][0]]
        assert h.engine.connection_status == ConnectionStatus.DISCONNECTED

        handlers['insert'](make_order())
        on_status(SUBSCRIBED)
        h.engine.on_visibility_change(False, now=0.0)
        h.engine.on_visibility_change(True, now=100.0)
        h.settle()

        assert h.cache.all_orders() == []
        assert len(h.store.subscriptions) == 1
        assert h.engine.connection_status == ConnectionStatus.DISCONNECTED
