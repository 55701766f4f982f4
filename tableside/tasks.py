"""
Celery Tasks
Background tasks for the revenue ledger export.
"""

import logging
import time
from datetime import datetime

from tableside.celery_worker import celery_app
from tableside.schemas import RevenueEntryResponse
from tableside.services.excel_manager import ExcelManager

logger = logging.getLogger(__name__)


def get_exporter() -> ExcelManager:
    return ExcelManager.from_settings()


def revenue_entry_payload(entry: RevenueEntryResponse, table_number=None) -> dict:
    """JSON-safe task payload for a ledger entry."""
    payload = entry.model_dump(mode="json")
    payload["table_number"] = table_number
    return payload


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(OSError,),
    retry_backoff=True
)
def export_revenue_entry(self, entry_data: dict) -> dict:
    """
    Append a revenue entry to the Excel workbook.

    Args:
        entry_data: Ledger entry as produced by revenue_entry_payload()

    Returns:
        dict: Result of the export operation
    """
    task_id = self.request.id
    account_id = entry_data.get('account_id', 'unknown')

    logger.info(f"Task {task_id}: exporting revenue of account #{account_id}")
    start_time = time.time()

    result = get_exporter().export_revenue(entry_data)

    elapsed = round(time.time() - start_time, 3)
    result['task_id'] = task_id
    result['processing_time_seconds'] = elapsed

    if result['success']:
        logger.info(f"Task {task_id}: account #{account_id} done in {elapsed}s")
    else:
        logger.warning(f"Task {task_id}: account #{account_id} failed - {result['message']}")

    return result


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


@celery_app.task
def clear_revenue_export() -> dict:
    """
    Delete the revenue workbook (for testing/reset purposes).
    """
    success = get_exporter().clear()
    return {
        'success': success,
        'message': 'Revenue export cleared' if success else 'Failed to clear revenue export',
        'timestamp': datetime.now().isoformat()
    }


def queue_revenue_export(entry: RevenueEntryResponse) -> None:
    """Revenue hook for TableAccountManager: queue the Excel export."""
    async_result = export_revenue_entry.delay(revenue_entry_payload(entry))
    logger.debug(f"Queued revenue export task {async_result.id} for account #{entry.account_id}")
