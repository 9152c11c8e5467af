"""
Order Aggregator: read-only statistics over the LocalOrderCache.

Revenue per product is the order total split evenly over the order's line
items. That is an approximation (items have no reliable unit price in the
row), not exact per-item pricing.
"""
from dataclasses import dataclass

from ..payments import NO_PHONE_BUCKET

DEFAULT_SIZE = 'simple'


@dataclass(frozen=True)
class ProductStats:
    product: str
    size: str
    combo: bool
    quantity: int
    revenue: float


@dataclass(frozen=True)
class CustomerStats:
    customer: str
    order_count: int
    total_spent: float


@dataclass(frozen=True)
class Summary:
    total_orders: int
    total_revenue: float
    unique_customers: int
    average_ticket: float


def _amount(order):
    try:
        return float(order.get('amount') or 0)
    except (TypeError, ValueError):
        return 0.0


def product_stats(orders):
    """Rollup by (product, size, combo), most sold first."""
    rollup = {}
    for order in orders:
        items = order.get('items') or []
        if not items:
            continue
        item_revenue = _amount(order) / len(items)
        for item in items:
            product = (item.get('product') or '').strip()
            if not product:
                continue
            key = (product, item.get('size') or DEFAULT_SIZE, bool(item.get('combo')))
            quantity, revenue = rollup.get(key, (0, 0.0))
            rollup[key] = (quantity + (item.get('quantity') or 1), revenue + item_revenue)

    stats = [
        ProductStats(product=product, size=size, combo=combo, quantity=quantity, revenue=revenue)
        for (product, size, combo), (quantity, revenue) in rollup.items()
    ]
    return sorted(stats, key=lambda s: (-s.quantity, s.product, s.size, s.combo))


def customer_stats(orders):
    """Rollup by phone (or the no-phone bucket), biggest spender first."""
    rollup = {}
    for order in orders:
        key = order.get('phone') or NO_PHONE_BUCKET
        count, spent = rollup.get(key, (0, 0.0))
        rollup[key] = (count + 1, spent + _amount(order))

    stats = [
        CustomerStats(customer=customer, order_count=count, total_spent=spent)
        for customer, (count, spent) in rollup.items()
    ]
    return sorted(stats, key=lambda s: (-s.total_spent, s.customer))


def summary(orders, customers=None):
    customers = customer_stats(orders) if customers is None else customers
    total_orders = len(orders)
    total_revenue = sum(_amount(o) for o in orders)
    return Summary(
        total_orders=total_orders,
        total_revenue=total_revenue,
        unique_customers=len(customers),
        average_ticket=total_revenue / total_orders if total_orders else 0.0,
    )


class OrderAggregator:
    """Memoizes the rollups on the cache version; recomputes in full when it moves."""

    def __init__(self, cache):
        self.cache = cache
        self._version = None
        self._result = None

    def _compute(self):
        if self._version != self.cache.version or self._result is None:
            orders = self.cache.all_orders()
            customers = customer_stats(orders)
            self._result = {
                'products': product_stats(orders),
                'customers': customers,
                'summary': summary(orders, customers),
            }
            self._version = self.cache.version
        return self._result

    def product_stats(self):
        return list(self._compute()['products'])

    def customer_stats(self):
        return list(self._compute()['customers'])

    def summary(self):
        return self._compute()['summary']
