from django.urls import path
from orders.views import (
    HealthCheckView,
    OrderCancelView,
    OrderCreateView,
    OrderPrintView,
    OrderStatusView,
)

urlpatterns = [
    path('orders/', OrderCreateView.as_view(), name='order-create'),
    path('orders/cancel/', OrderCancelView.as_view(), name='order-cancel'),
    path('orders/<int:order_number>/status/', OrderStatusView.as_view(), name='order-status'),
    path('orders/<uuid:order_id>/print/', OrderPrintView.as_view(), name='order-print'),
    path('health/', HealthCheckView.as_view(), name='health-check'),
]
