import os
import django
import logging

# Setup Django
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'comandas.settings')
django.setup()

from orders.consumers.runtime import build_engine, run
from orders.payments import is_pickup
from orders.sync.items import completed_count, item_status_of

logger = logging.getLogger(__name__)


class KitchenDisplay:
    """Console kitchen board: logs the FIFO queue every time the cache changes."""

    process_name = "Kitchen Display"

    def __init__(self, engine):
        self.engine = engine
        self._last_version = None
        engine.cache.add_listener(self.render)
        engine.subscription.add_status_listener(self.on_connection)

    def on_connection(self, status):
        logger.info(f"[{self.process_name}] Connection: {status.value}")

    def describe(self, order):
        tracked = item_status_of(order)
        progress = f"{completed_count(order)}/{len(tracked)}" if tracked else '-'
        mode = 'RETIRA' if is_pickup(order.get('delivery_address')) else 'ENVIO'
        return f"#{order.get('order_number')} {order.get('customer_name', '')} [{mode}] items {progress}"

    def render(self, cache):
        if cache.version == self._last_version:
            return
        self._last_version = cache.version
        queue = cache.kitchen_queue()
        lines = '\n'.join(f"   {self.describe(order)}" for order in queue) or '   (sin pedidos)'
        logger.info(f"🍳 [{self.process_name}] {len(queue)} pending:\n{lines}")


if __name__ == '__main__':
    engine = build_engine()
    KitchenDisplay(engine)
    run(engine)
