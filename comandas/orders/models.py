import uuid

from django.db import models


class Order(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_COMPLETED = 'completed'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_COMPLETED, 'Completed'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    # Display only; resets every day, never used for identity
    order_number = models.PositiveIntegerField()

    customer_name = models.CharField(max_length=200)
    phone = models.CharField(max_length=50, null=True, blank=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    # Plain method name, or a JSON array of {"method", "amount"} for mixed payments
    payment_method = models.TextField(default='efectivo')
    scheduled_time = models.CharField(max_length=50, null=True, blank=True)
    delivery_address = models.TextField(null=True, blank=True)
    cash_tendered = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    change_due = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    items = models.JSONField(default=list)
    item_status = models.JSONField(null=True, blank=True)
    extras = models.JSONField(null=True, blank=True)

    courier_departed = models.BooleanField(default=False)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    # Idempotency key to avoid duplicate intake submissions
    idempotency_key = models.CharField(max_length=100, unique=True, null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status'], name='orders_orde_status_c6dd84_idx'),
            models.Index(fields=['created_at'], name='orders_orde_created_0e92de_idx'),
            models.Index(fields=['order_number', 'created_at'], name='orders_orde_order_n_7f4b1e_idx'),
        ]

    def __str__(self):
        return f"Order #{self.order_number} - {self.customer_name} ({self.status})"

    def to_row(self):
        """Serialize as a change-feed / store row (JSON-safe)."""
        return {
            'id': str(self.id),
            'order_number': self.order_number,
            'customer_name': self.customer_name,
            'phone': self.phone,
            'amount': float(self.amount) if self.amount is not None else None,
            'payment_method': self.payment_method,
            'scheduled_time': self.scheduled_time,
            'delivery_address': self.delivery_address,
            'cash_tendered': float(self.cash_tendered) if self.cash_tendered is not None else None,
            'change_due': float(self.change_due) if self.change_due is not None else None,
            'items': self.items,
            'item_status': self.item_status,
            'extras': self.extras,
            'courier_departed': self.courier_departed,
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
