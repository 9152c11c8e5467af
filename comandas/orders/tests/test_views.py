import uuid
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from rest_framework.test import APIClient

from orders.exceptions import CancellationWindowExpired
from orders.intake import cancel_order, status_message
from orders.models import Order

pytestmark = pytest.mark.django_db


@pytest.fixture
def client():
    return APIClient()


def order_payload(**overrides):
    payload = {
        'customer_name': 'Ana',
        'phone': '1155551234',
        'amount': '25000.00',
        'items': [
            {'product': 'Cheese', 'quantity': 2, 'size': 'doble', 'combo': True},
            {'product': 'Bacon', 'removals': ['cebolla']},
        ],
        'delivery_address': 'Av. Corrientes 1234',
        'payment_method': 'efectivo',
        'cash_tendered': '30000',
        'change_due': '5000',
    }
    payload.update(overrides)
    return payload


def create(**fields):
    defaults = {
        'order_number': 1,
        'customer_name': 'Ana',
        'amount': 10000,
        'items': [{'product': 'Cheese', 'quantity': 1}],
        'delivery_address': 'Av. Corrientes 1234',
    }
    defaults.update(fields)
    return Order.objects.create(**defaults)


class TestOrderCreate:
    def test_creates_pending_order_with_item_tracking(self, client):
        response = client.post('/orders/', order_payload(), format='json')

        assert response.status_code == 201
        assert response.data['order_number'] == 1

        order = Order.objects.get()
        assert order.status == Order.STATUS_PENDING
        assert [e['completed'] for e in order.item_status] == [False, False]
        assert order.item_status[1]['product'] == 'Bacon'
        assert order.items[1]['quantity'] == 1

    def test_order_numbers_follow_the_daily_sequence(self, client):
        client.post('/orders/', order_payload(), format='json')
        response = client.post('/orders/', order_payload(customer_name='Luis'), format='json')

        assert response.data['order_number'] == 2

    def test_pickup_and_mixed_payment(self, client):
        payload = order_payload(
            pickup=True,
            phone='',
            payment_method=[
                {'method': 'transferencia', 'amount': 15000},
                {'method': 'efectivo', 'amount': 10000},
            ],
        )

        response = client.post('/orders/', payload, format='json')

        assert response.status_code == 201
        order = Order.objects.get()
        assert order.delivery_address is None
        assert order.phone is None
        assert order.payment_method.startswith('[')

    def test_rejects_orders_without_items(self, client):
        response = client.post('/orders/', order_payload(items=[]), format='json')

        assert response.status_code == 400
        assert 'items' in response.data['errors']
        assert Order.objects.count() == 0

    def test_idempotency_key_returns_existing_order(self, client):
        headers = {'HTTP_X_IDEMPOTENCY_KEY': 'abc-123'}

        first = client.post('/orders/', order_payload(), format='json', **headers)
        second = client.post('/orders/', order_payload(), format='json', **headers)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.data['message'] == 'Order already exists'
        assert second.data['data']['id'] == first.data['data']['id']
        assert Order.objects.count() == 1

    def test_tickets_are_queued_after_commit(self, client, django_capture_on_commit_callbacks):
        with patch('orders.intake.print_order_tickets') as task:
            with django_capture_on_commit_callbacks(execute=True):
                response = client.post('/orders/', order_payload(), format='json')

        task.delay.assert_called_once_with(response.data['data']['id'])


class TestOrderStatus:
    def test_unknown_order(self, client):
        response = client.get('/orders/99/status/')

        assert response.status_code == 200
        assert response.data == {'found': False, 'message': 'No se encontró el pedido #99 de hoy'}

    def test_pending_delivery(self, client):
        create(order_number=7)

        response = client.get('/orders/7/status/')

        assert response.data['found'] is True
        assert response.data['is_pickup'] is False
        assert response.data['message'] == 'El pedido #7 está en preparación'

    def test_pickup_ready(self, client):
        create(order_number=3, delivery_address=None, courier_departed=True)

        response = client.get('/orders/3/status/')

        assert response.data['ready_for_pickup'] is True
        assert response.data['message'] == 'El pedido #3 está listo para retirar en el local'

    @pytest.mark.parametrize('fields, expected', [
        ({'courier_departed': True}, 'El cadete ya salió con el pedido #5'),
        ({'status': 'completed'}, 'El pedido #5 está listo pero el cadete aún no salió'),
        ({'status': 'completed', 'delivery_address': 'retira'}, 'El pedido #5 está listo'),
    ])
    def test_status_messages(self, fields, expected):
        attrs = {'order_number': 5, 'customer_name': 'Ana', 'delivery_address': 'Calle 1', **fields}
        order = Order(**attrs)
        assert status_message(order) == expected


class TestOrderCancel:
    def test_cancels_recent_order(self, client):
        create(order_number=4)

        response = client.post('/orders/cancel/', {'order_number': 4}, format='json')

        assert response.status_code == 200
        assert response.data['success'] is True
        assert response.data['customer_name'] == 'Ana'
        assert Order.objects.count() == 0

    def test_unknown_order(self, client):
        response = client.post('/orders/cancel/', {'order_number': 4}, format='json')

        assert response.status_code == 404

    def test_missing_number(self, client):
        response = client.post('/orders/cancel/', {}, format='json')

        assert response.status_code == 400

    def test_expired_window_is_forbidden(self, client):
        with patch('orders.views.cancel_order', side_effect=CancellationWindowExpired(4, 20.0, 15)):
            response = client.post('/orders/cancel/', {'order_number': 4}, format='json')

        assert response.status_code == 403
        assert response.data['message'] == 'Cannot delete order'

    def test_window_is_enforced(self):
        order = create(order_number=4)

        with pytest.raises(CancellationWindowExpired):
            cancel_order(4, now=order.created_at + timedelta(minutes=16))

        assert Order.objects.count() == 1
        assert cancel_order(4, now=order.created_at + timedelta(minutes=5)) == {
            'order_number': 4,
            'customer_name': 'Ana',
        }

    def test_cancel_tickets_are_queued(self, django_capture_on_commit_callbacks):
        create(order_number=4)

        with patch('orders.intake.print_cancel_tickets') as task:
            with django_capture_on_commit_callbacks(execute=True):
                cancel_order(4)

        task.delay.assert_called_once_with(4, 'Ana')


class TestOrderPrint:
    def test_queues_reprint(self, client):
        order = create()

        with patch('orders.views.print_order_tickets') as task:
            task.delay.return_value = MagicMock(id='task-1')
            response = client.post(f'/orders/{order.id}/print/')

        assert response.status_code == 202
        assert response.data['task_id'] == 'task-1'
        task.delay.assert_called_once_with(str(order.id))

    def test_unknown_order(self, client):
        response = client.post(f'/orders/{uuid.uuid4()}/print/')

        assert response.status_code == 404

    def test_queue_unavailable(self, client):
        order = create()

        with patch('orders.views.print_order_tickets') as task:
            task.delay.side_effect = ConnectionError('broker down')
            response = client.post(f'/orders/{order.id}/print/')

        assert response.status_code == 503
