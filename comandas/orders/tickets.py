"""
ESC/POS ticket rendering for the kitchen and cashier printers.

Tickets are opaque bytes as far as the rest of the system is concerned; they
are base64-encoded and posted to the print webhooks by orders.tasks.
"""
from .payments import format_amount, format_payment_method, is_pickup, shows_cash

KITCHEN = 'kitchen'
CASHIER = 'cashier'
TICKET_KINDS = (KITCHEN, CASHIER)

ESC = 0x1B
GS = 0x1D
LF = 0x0A

CENTER = bytes([ESC, 0x61, 0x01])
LEFT = bytes([ESC, 0x61, 0x00])
BOLD_ON = bytes([ESC, 0x45, 0x01])
BOLD_OFF = bytes([ESC, 0x45, 0x00])
DOUBLE_SIZE = bytes([ESC, 0x21, 0x30])
MEDIUM_SIZE = bytes([ESC, 0x21, 0x10])
NORMAL_SIZE = bytes([ESC, 0x21, 0x00])
CUT = bytes([GS, 0x56, 0x00])

RULE = '=' * 32


class TicketBuilder:
    def __init__(self):
        self._buffer = bytearray()

    def raw(self, *chunks):
        for chunk in chunks:
            self._buffer += chunk
        return self

    def text(self, value):
        self._buffer += str(value).encode('utf-8')
        return self

    def newline(self, count=1):
        self._buffer += bytes([LF] * count)
        return self

    def line(self, value=''):
        return self.text(value).newline()

    def rule(self):
        return self.line(RULE)

    def heading(self, value, size=DOUBLE_SIZE):
        return self.raw(size, BOLD_ON).text(value).raw(BOLD_OFF).newline()

    def bold_line(self, value):
        return self.raw(BOLD_ON).text(value).raw(BOLD_OFF).newline()

    def finish(self):
        self.newline(5).raw(CUT)
        return bytes(self._buffer)


def _item_lines(builder, items, with_prices):
    for item in items or []:
        desc = f"{item.get('quantity', 1)}x {item.get('product', '')} {item.get('size', '')}".rstrip()
        if item.get('combo'):
            desc += ' (combo)'
        if with_prices and item.get('price'):
            desc += f" ${format_amount(item['price'])}"
        builder.newline().line(desc)
        if item.get('additions'):
            builder.line(f"+ {', '.join(item['additions'])}")
        if item.get('removals'):
            builder.line(f"- {', '.join(item['removals'])}")
        if item.get('observations'):
            builder.line(f"OBS: {item['observations']}")


def _extra_lines(builder, extras, with_prices):
    if not extras:
        return
    builder.newline().rule().bold_line('EXTRAS:')
    for extra in extras:
        desc = f"{extra.get('quantity') or 1}x {extra.get('name', '')}"
        if with_prices and extra.get('price'):
            desc += f" ${format_amount(extra['price'])}"
        builder.newline().line(desc)


def render_ticket(order, kind=KITCHEN):
    """Render a kitchen or cashier ticket for an order row (dict)."""
    if kind not in TICKET_KINDS:
        raise ValueError(f"Unknown ticket kind: {kind}")

    builder = TicketBuilder().raw(CENTER)
    builder.heading('COCINA' if kind == KITCHEN else 'CAJA')

    if order.get('scheduled_time'):
        builder.heading(f"PROGRAMADO: {order['scheduled_time']}")

    if kind == KITCHEN:
        builder.heading('RETIRA EN LOCAL' if is_pickup(order.get('delivery_address')) else 'ENVIO')

    builder.rule().raw(BOLD_ON).text(f"PEDIDO #{order.get('order_number')}").raw(BOLD_OFF, bytes([LF]), MEDIUM_SIZE)
    builder.rule().newline()

    if kind == CASHIER:
        builder.line(f"Cliente: {order.get('customer_name', '')}")
        if order.get('phone'):
            builder.newline().line(f"Tel: {order['phone']}")
        if order.get('delivery_address'):
            builder.newline().line('Entrega:').line(order['delivery_address'])
        builder.newline().rule().newline()

    with_prices = kind == CASHIER
    _item_lines(builder, order.get('items'), with_prices)
    _extra_lines(builder, order.get('extras'), with_prices)

    if kind == CASHIER:
        builder.newline().bold_line(f"TOTAL: ${format_amount(order.get('amount'))}")
        builder.newline().line(f"Pago: {format_payment_method(order.get('payment_method'))}")
        if shows_cash(order):
            builder.newline().rule().bold_line(f"PAGA CON: ${format_amount(order['cash_tendered'])}")
            if order.get('change_due') and float(order['change_due']) > 0:
                builder.bold_line(f"VUELTO: ${format_amount(order['change_due'])}")

    return builder.finish()


def render_cancel_ticket(kind, order_number, customer_name):
    if kind not in TICKET_KINDS:
        raise ValueError(f"Unknown ticket kind: {kind}")

    builder = TicketBuilder().raw(CENTER)
    builder.heading('COCINA' if kind == KITCHEN else 'CAJA')
    builder.rule().bold_line(f"PEDIDO #{order_number}").rule().newline()
    builder.raw(DOUBLE_SIZE, BOLD_ON).text('*** CANCELADO ***').raw(BOLD_OFF, bytes([LF]), NORMAL_SIZE)
    builder.newline().raw(LEFT).line(f"Cliente: {customer_name}")
    return builder.finish()
