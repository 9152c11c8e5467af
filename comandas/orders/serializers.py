from rest_framework import serializers

from .payments import serialize_payment_method


class OrderItemSerializer(serializers.Serializer):
    product = serializers.CharField(max_length=200)
    quantity = serializers.IntegerField(min_value=1, default=1)
    size = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    combo = serializers.BooleanField(required=False, default=False)
    additions = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    removals = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    observations = serializers.CharField(required=False, allow_blank=True, default='')
    price = serializers.FloatField(required=False, allow_null=True, min_value=0)


class ExtraItemSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    quantity = serializers.IntegerField(min_value=1, default=1)
    price = serializers.FloatField(required=False, allow_null=True, min_value=0)


class PaymentPartSerializer(serializers.Serializer):
    method = serializers.CharField(max_length=50)
    amount = serializers.FloatField(min_value=0)


class PaymentMethodField(serializers.Field):
    """Plain method name, or a list of {method, amount} for mixed payments."""

    default_error_messages = {
        'invalid': 'Expected a payment method name or a list of {method, amount}.',
    }

    def to_internal_value(self, data):
        if isinstance(data, list):
            parts = PaymentPartSerializer(data=data, many=True)
            parts.is_valid(raise_exception=True)
            return serialize_payment_method(parts.validated_data)
        if isinstance(data, str):
            return serialize_payment_method(data.strip())
        if data is None:
            return serialize_payment_method(None)
        self.fail('invalid')

    def to_representation(self, value):
        return value


class OrderIntakeSerializer(serializers.Serializer):
    """Validates a new order before anything is persisted."""

    customer_name = serializers.CharField(max_length=200)
    phone = serializers.CharField(max_length=50, required=False, allow_blank=True, allow_null=True)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    items = OrderItemSerializer(many=True, allow_empty=False)
    extras = ExtraItemSerializer(many=True, required=False, allow_null=True)
    payment_method = PaymentMethodField(required=False)
    scheduled_time = serializers.CharField(max_length=50, required=False, allow_blank=True, allow_null=True)
    delivery_address = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    pickup = serializers.BooleanField(required=False, default=False)
    cash_tendered = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True
    )
    change_due = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True
    )

    def validate(self, attrs):
        if attrs.pop('pickup', False):
            attrs['delivery_address'] = None
        for name in ('phone', 'scheduled_time', 'delivery_address'):
            if not attrs.get(name):
                attrs[name] = None
        attrs.setdefault('payment_method', serialize_payment_method(None))
        if not attrs.get('extras'):
            attrs['extras'] = None
        return attrs


class CancelOrderSerializer(serializers.Serializer):
    order_number = serializers.IntegerField(min_value=1)
