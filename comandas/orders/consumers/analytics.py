import os
import django
import logging

# Setup Django
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'comandas.settings')
django.setup()

from orders.consumers.runtime import build_engine, run
from orders.payments import format_amount

logger = logging.getLogger(__name__)

REPORT_INTERVAL_SECONDS = 30
TOP_N = 5


def report(engine):
    aggregator = engine.aggregator
    summary = aggregator.summary()
    products = '\n'.join(
        f"   {s.quantity:>4}x {s.product} {s.size}{' (combo)' if s.combo else ''} ${format_amount(s.revenue)}"
        for s in aggregator.product_stats()[:TOP_N]
    )
    customers = '\n'.join(
        f"   {s.customer}: {s.order_count} pedidos, ${format_amount(s.total_spent)}"
        for s in aggregator.customer_stats()[:TOP_N]
    )
    logger.info(
        f"\n{'='*70}\n"
        f"📊 [Analytics] Pedidos: {summary.total_orders} | "
        f"Ingresos: ${format_amount(round(summary.total_revenue))} | "
        f"Clientes: {summary.unique_customers} | "
        f"Promedio: ${format_amount(round(summary.average_ticket))}\n"
        f"Top productos:\n{products or '   -'}\n"
        f"Top clientes:\n{customers or '   -'}\n"
        f"{'='*70}"
    )


def schedule_reports(engine, interval=REPORT_INTERVAL_SECONDS):
    def tick():
        report(engine)
        if not engine.disposed:
            engine.scheduler.call_later(interval, tick)

    engine.scheduler.call_later(interval, tick)


if __name__ == '__main__':
    engine = build_engine()
    schedule_reports(engine)
    run(engine)
