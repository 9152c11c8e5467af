"""
Accessors for the items / item_status pair.

item_status[i] describes items[i]. Every read and write of that positional
coupling goes through this module so the storage shape can change in one place.
"""

ITEM_STATUS_FIELDS = ('product', 'quantity', 'size', 'combo')


def build_item_status(items):
    """Fresh tracking list for newly received items: nothing completed yet."""
    return [
        {
            'product': item.get('product', ''),
            'quantity': item.get('quantity', 1),
            'size': item.get('size', ''),
            'combo': bool(item.get('combo', False)),
            'completed': False,
        }
        for item in items or []
    ]


def item_status_of(order):
    """Return the tracking list, or None when the order has nothing trackable."""
    status = order.get('item_status')
    if not isinstance(status, list) or not status:
        return None
    return status


def is_aligned(order):
    items = order.get('items')
    status = order.get('item_status')
    if not isinstance(items, list) or not isinstance(status, list):
        return True
    return len(items) == len(status)


def paired_items(order):
    """Yield (item, status_entry) pairs; status_entry is None when untracked."""
    items = order.get('items') or []
    status = item_status_of(order) or []
    for index, item in enumerate(items):
        yield item, status[index] if index < len(status) else None


def with_item_toggled(item_status, index):
    """Return a new list with entry `index` flipped; the input is not touched."""
    return [
        {**entry, 'completed': not entry.get('completed', False)} if i == index else entry
        for i, entry in enumerate(item_status)
    ]


def completed_count(order):
    status = item_status_of(order) or []
    return sum(1 for entry in status if entry.get('completed'))
