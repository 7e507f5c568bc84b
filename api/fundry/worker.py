import logging
from celery import Celery
from sqlmodel import Session

from . import db
from .config import REDIS_URL, SWEEP_INTERVAL_SECONDS, WORKER_QUEUE
from .services import campaigns, investments

logger = logging.getLogger(__name__)

cel = Celery("fundry", broker=REDIS_URL, backend=REDIS_URL)
cel.conf.task_default_queue = WORKER_QUEUE
cel.conf.beat_schedule = {
    "expire-stale-investments": {
        "task": "expire_stale_investments",
        "schedule": float(SWEEP_INTERVAL_SECONDS),
    },
    "close-expired-campaigns": {
        "task": "close_expired_campaigns",
        "schedule": float(SWEEP_INTERVAL_SECONDS),
    },
}


@cel.task(name="expire_stale_investments", queue=WORKER_QUEUE)
def expire_stale_investments():
    with Session(db.engine) as session:
        count = investments.expire_stale_investments(session)
    logger.info("stale investment sweep cancelled %d commitments", count)
    return {"expired": count}


@cel.task(name="close_expired_campaigns", queue=WORKER_QUEUE)
def close_expired_campaigns():
    with Session(db.engine) as session:
        count = campaigns.close_expired_campaigns(session)
    logger.info("deadline sweep closed %d campaigns", count)
    return {"closed": count}
