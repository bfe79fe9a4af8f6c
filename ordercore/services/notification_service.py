# ordercore/services/notification_service.py
from ordercore.celery_worker import celery_app
from ordercore.domain.enums import NotificationEvent
from ordercore.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Wysylanie powiadomien przez kolejke Celery.
    Serwisy wolaja notify() dopiero po commit; blad kolejki jest logowany
    i nigdy nie zmienia wyniku transakcji.
    """

    def notify(self, event: NotificationEvent, order_id: int) -> None:
        try:
            dispatch_notification_task.delay(event.value, order_id)
        except Exception as e:
            logger.warning(f"Notification {event.value} for order {order_id} not enqueued: {e}")


@celery_app.task(name="ordercore.services.notification_service.dispatch_notification_task")
def dispatch_notification_task(event: str, order_id: int):
    """
    Celery task - tu wpina sie dostawca email/SMS/push.
    Rendering i wysylka maili sa poza tym serwisem, wiec tylko logujemy.
    """
    logger.info(f"[NOTIFICATION] {event}: order {order_id}")
    return {"event": event, "order_id": order_id, "status": "sent"}
