"""
Turn Order row changes into change events on the Kafka change feed.

Events are queued only after the surrounding transaction commits, so a
rolled-back write never reaches the dashboards.
"""
import logging

from django.conf import settings
from django.db import transaction
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from .kafka_producer import build_change_event
from .models import Order
from .sync.store import DELETE, INSERT, UPDATE
from .tasks import publish_order_change

logger = logging.getLogger(__name__)

TABLE = 'orders'


def _enqueue(event):
    if not settings.ORDER_CHANGE_FEED_ENABLED:
        return
    transaction.on_commit(lambda: publish_order_change.delay(event))
    logger.debug(f"[Change Events] Queued {event['type']} for {(event['new'] or event['old'])['id']}")


@receiver(post_save, sender=Order)
def order_saved(sender, instance, created, **kwargs):
    row = instance.to_row()
    if created:
        _enqueue(build_change_event(INSERT, TABLE, new=row))
    else:
        _enqueue(build_change_event(UPDATE, TABLE, new=row, old={'id': row['id']}))


@receiver(post_delete, sender=Order)
def order_deleted(sender, instance, **kwargs):
    _enqueue(build_change_event(DELETE, TABLE, old=instance.to_row()))
