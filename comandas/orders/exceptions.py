class OrderError(Exception):
    """Base class for order errors."""


class OrderNotFound(OrderError):
    def __init__(self, order_ref):
        self.order_ref = order_ref
        super().__init__(f"Order {order_ref} not found")


class RemoteStoreError(OrderError):
    """A read or write against the remote order store failed."""


class MalformedChangeError(OrderError):
    """A change-feed payload could not be turned into an order row."""


class CancellationWindowExpired(OrderError):
    """Business rule: orders can only be cancelled shortly after creation."""

    def __init__(self, order_number, age_minutes, window_minutes):
        self.order_number = order_number
        self.age_minutes = age_minutes
        self.window_minutes = window_minutes
        super().__init__(
            f"Order #{order_number} is older than {window_minutes} minutes and cannot be deleted"
        )
