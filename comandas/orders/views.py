from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status
import logging

from .exceptions import CancellationWindowExpired, OrderNotFound
from .intake import cancel_order, create_order, order_status
from .models import Order
from .serializers import CancelOrderSerializer, OrderIntakeSerializer
from .tasks import print_order_tickets

logger = logging.getLogger(__name__)


class OrderCreateView(APIView):
    """
    Order intake (storefront checkout and manual staff entry).

    The order is stored as pending; kitchen and cashier tickets are queued
    after commit and never block the response.
    """

    def post(self, request):
        serializer = OrderIntakeSerializer(data=request.data)

        if not serializer.is_valid():
            logger.warning(f"Invalid order data: {serializer.errors}")
            return Response(
                {'message': 'Invalid data', 'errors': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        idempotency_key = request.headers.get('X-Idempotency-Key') or None

        try:
            order, created = create_order(serializer.validated_data, idempotency_key=idempotency_key)
        except Exception as e:
            logger.error(f"Error creating order: {e}", exc_info=True)
            return Response(
                {'message': 'Failed to create order', 'error': str(e)},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )

        if not created:
            return Response(
                {'message': 'Order already exists', 'data': order.to_row()},
                status=status.HTTP_200_OK
            )

        return Response(
            {
                'message': 'Order created successfully',
                'order_number': order.order_number,
                'data': order.to_row(),
            },
            status=status.HTTP_201_CREATED
        )


class OrderStatusView(APIView):
    """Customer-facing status of today's order with this number."""

    def get(self, request, order_number):
        return Response(order_status(order_number), status=status.HTTP_200_OK)


class OrderCancelView(APIView):
    def post(self, request):
        serializer = CancelOrderSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'message': 'Invalid data', 'errors': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        order_number = serializer.validated_data['order_number']
        try:
            result = cancel_order(order_number)
        except OrderNotFound:
            return Response(
                {'message': 'Order not found', 'order_number': order_number},
                status=status.HTTP_404_NOT_FOUND
            )
        except CancellationWindowExpired as e:
            logger.info(f"Cancel rejected for order #{order_number}: {e}")
            return Response(
                {'message': 'Cannot delete order', 'details': str(e)},
                status=status.HTTP_403_FORBIDDEN
            )

        return Response(
            {'success': True, 'message': 'Order deleted successfully', **result},
            status=status.HTTP_200_OK
        )


class OrderPrintView(APIView):
    """Reprint kitchen + cashier tickets for a stored order."""

    def post(self, request, order_id):
        if not Order.objects.filter(id=order_id).exists():
            return Response({'message': 'Order not found'}, status=status.HTTP_404_NOT_FOUND)

        try:
            task = print_order_tickets.delay(str(order_id))
        except Exception as e:
            logger.error(f"Could not queue reprint for {order_id}: {e}", exc_info=True)
            return Response(
                {'message': 'Print queue unavailable', 'error': str(e)},
                status=status.HTTP_503_SERVICE_UNAVAILABLE
            )

        return Response(
            {'message': 'Tickets queued', 'task_id': str(task.id)},
            status=status.HTTP_202_ACCEPTED
        )


class HealthCheckView(APIView):
    """
    Health check endpoint to monitor the service
    """

    def get(self, request):
        from .kafka_producer import get_circuit_breaker_status, get_producer
        from celery import current_app

        health_status = {
            'status': 'healthy',
            'services': {}
        }

        # Check Database
        try:
            Order.objects.count()
            health_status['services']['database'] = 'healthy'
        except Exception as e:
            health_status['services']['database'] = f'unhealthy: {str(e)}'
            health_status['status'] = 'degraded'

        # Check Kafka
        try:
            get_producer()
            health_status['services']['kafka'] = 'healthy'
        except Exception as e:
            health_status['services']['kafka'] = f'unhealthy: {str(e)}'
            health_status['status'] = 'degraded'
        health_status['services']['kafka_circuit'] = get_circuit_breaker_status()

        # Check Celery
        try:
            stats = current_app.control.inspect(timeout=1).stats()
            if stats:
                health_status['services']['celery'] = 'healthy'
            else:
                health_status['services']['celery'] = 'no workers'
                health_status['status'] = 'degraded'
        except Exception as e:
            health_status['services']['celery'] = f'unhealthy: {str(e)}'
            health_status['status'] = 'degraded'

        response_status = status.HTTP_200_OK if health_status['status'] == 'healthy' else status.HTTP_503_SERVICE_UNAVAILABLE

        return Response(health_status, status=response_status)
