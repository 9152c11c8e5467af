import logging
from unittest.mock import MagicMock, patch

from orders.consumers.analytics import report, schedule_reports
from orders.consumers.kitchen import KitchenDisplay
from orders.consumers.runtime import SuspendWatchdog, run

from .conftest import make_order


class TestSuspendWatchdog:
    def build(self, times):
        clock = iter(times)
        engine = MagicMock()
        return engine, SuspendWatchdog(engine, interval=1.0, clock=lambda: next(clock))

    def test_regular_ticks_report_nothing(self):
        engine, watchdog = self.build([100.0, 101.0, 102.5])

        assert watchdog.tick() is False
        assert watchdog.tick() is False
        assert watchdog.tick() is False
        engine.on_visibility_change.assert_not_called()

    def test_gap_is_reported_as_hidden_then_visible(self):
        engine, watchdog = self.build([100.0, 101.0, 160.0])

        watchdog.tick()
        watchdog.tick()
        assert watchdog.tick() is True

        assert [c.args for c in engine.on_visibility_change.call_args_list] == [(False,), (True,)]
        assert [c.kwargs for c in engine.on_visibility_change.call_args_list] == [
            {'now': 101.0},
            {'now': 160.0},
        ]


@patch('orders.consumers.runtime.close_producer')
def test_run_disposes_on_interrupt(close_producer):
    engine = MagicMock()
    engine.run_forever.side_effect = KeyboardInterrupt
    watchdog = MagicMock()

    run(engine, watchdog=watchdog)

    engine.init.assert_called_once()
    watchdog.start.assert_called_once()
    watchdog.stop.assert_called_once()
    engine.dispose.assert_called_once()
    engine.scheduler.drain.assert_called_once()
    close_producer.assert_called_once()


def test_kitchen_display_logs_fifo_queue(started, caplog):
    older, newer = make_order(customer_name='Ana'), make_order(customer_name='Luis')
    h = started([older])
    KitchenDisplay(h.engine)

    with caplog.at_level(logging.INFO, logger='orders.consumers.kitchen'):
        h.store.emit_insert(newer)
        h.settle()

    text = [r.getMessage() for r in caplog.records if r.name == 'orders.consumers.kitchen'][-1]
    assert '2 pending' in text
    assert text.index('Ana') < text.index('Luis')
    assert 'items 0/2' in text


def test_analytics_report_and_schedule(started, caplog):
    h = started([make_order(amount=20000), make_order(amount=10000, phone=None)])

    with caplog.at_level(logging.INFO, logger='orders.consumers.analytics'):
        report(h.engine)
    assert 'Pedidos: 2' in caplog.text
    assert 'Ingresos: $30.000' in caplog.text

    schedule_reports(h.engine, interval=30)
    assert [t.delay for t in h.timers.active] == [30]

    h.timers.fire_all()
    h.settle()
    # each report schedules the next one
    assert [t.delay for t in h.timers.active] == [30]
