"""Celery tasks for delivering travel request notifications."""

import logging

from prometheus_client import Counter

from .worker import celery_app


logger = logging.getLogger(__name__)

NOTIFICATION_COUNTER = Counter(
    "notifications_sent_total", "Total travel notifications delivered"
)


@celery_app.task(name="travel.tasks.deliver_notification")
def deliver_notification(email: str, message: str) -> None:
    """Deliver a notification message to ``email``.

    Delivery is a log line; an e-mail transport would plug in here.
    """
    logger.info("notification e-mail to %s: %s", email, message)
    NOTIFICATION_COUNTER.inc()
