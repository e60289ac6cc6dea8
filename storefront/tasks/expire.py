# storefront/tasks/expire.py
from storefront.celery_worker import celery_app
from storefront.data.database import SessionLocal
from storefront.services.expiry_sweeper import ExpirySweeper
from storefront.utils.logging import get_logger

import storefront.data.models  # noqa: F401

logger = get_logger(__name__)


@celery_app.task(name="storefront.tasks.expire.expire_carts_task")
def expire_carts_task():
    logger.info("Expire carts task started")
    try:
        report = ExpirySweeper(SessionLocal).run()
    except Exception as e:
        logger.error(f"Expire carts task failed: {e}")
        raise
    logger.info(
        f"Expire carts task done: found {report.found}, expired {len(report.expired)}, "
        f"skipped {len(report.skipped)}, failed {len(report.failed)}"
    )
    return report.as_dict()
