import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Order',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('order_number', models.PositiveIntegerField()),
                ('customer_name', models.CharField(max_length=200)),
                ('phone', models.CharField(blank=True, max_length=50, null=True)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('payment_method', models.TextField(default='efectivo')),
                ('scheduled_time', models.CharField(blank=True, max_length=50, null=True)),
                ('delivery_address', models.TextField(blank=True, null=True)),
                ('cash_tendered', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('change_due', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('items', models.JSONField(default=list)),
                ('item_status', models.JSONField(blank=True, null=True)),
                ('extras', models.JSONField(blank=True, null=True)),
                ('courier_departed', models.BooleanField(default=False)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('completed', 'Completed')], default='pending', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('idempotency_key', models.CharField(blank=True, max_length=100, null=True, unique=True)),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status'], name='orders_orde_status_c6dd84_idx'),
                    models.Index(fields=['created_at'], name='orders_orde_created_0e92de_idx'),
                    models.Index(fields=['order_number', 'created_at'], name='orders_orde_order_n_7f4b1e_idx'),
                ],
            },
        ),
    ]
