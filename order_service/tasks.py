"""
Celery Tasks
Background work of the order service:
- delivering published notifications to the Notification Dispatcher
- retrying failed Ledger side effects recorded in the outbox
"""

import asyncio
import logging
from datetime import datetime

from order_service.celery_worker import celery_app
from order_service.core.exceptions import DownstreamUnavailableError
from order_service.database import async_session_maker, engine
from order_service.repository import SqlAlchemyOrderRepository
from order_service.services.directory import get_directory_service, reset_directory_service
from order_service.services.ledger import get_ledger_service, reset_ledger_service
from order_service.services.notifications.http import HttpNotificationService
from order_service.services.orchestrator import OrderOrchestrator

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(DownstreamUnavailableError,),
    retry_backoff=True
)
def deliver_notification(self, channel: str, recipient_id: int, message: str) -> dict:
    """
    Push a notification through the HTTP Notification Dispatcher.

    Retried only while the dispatcher is unreachable; a recipient that is
    not connected is logged and dropped.

    Returns:
        dict: Result of the delivery
    """
    task_id = self.request.id

    async def _send():
        service = HttpNotificationService()
        try:
            return await service.send(channel, recipient_id, message)
        finally:
            await service.close()

    result = asyncio.run(_send())

    if result.success:
        logger.info(f"Task {task_id}: notification delivered to {channel} #{recipient_id}")
    else:
        logger.warning(f"Task {task_id}: notification to {channel} #{recipient_id} dropped - {result.error_message}")

    return {
        'task_id': task_id,
        'success': result.success,
        'channel': channel,
        'recipient_id': recipient_id,
        'error': result.error_message,
    }


@celery_app.task
def reconcile_order_events() -> dict:
    """
    Retry failed and stuck outbox events.
    Scheduled by Celery beat every RECONCILE_INTERVAL_SECONDS.
    """
    async def _reconcile():
        directory = get_directory_service()
        ledger = get_ledger_service()
        try:
            async with async_session_maker() as session:
                orchestrator = OrderOrchestrator(
                    repository=SqlAlchemyOrderRepository(session),
                    directory=directory,
                    ledger=ledger,
                )
                return await orchestrator.reconcile_events()
        finally:
            # Pooled connections are bound to this event loop
            await ledger.close()
            await directory.close()
            reset_ledger_service()
            reset_directory_service()
            await engine.dispose()

    report = asyncio.run(_reconcile())
    return {
        **report.to_dict(),
        'timestamp': datetime.now().isoformat(),
    }


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }
