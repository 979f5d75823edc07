from __future__ import annotations

import logging
import sys
from contextlib import contextmanager

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from ..db.session import SessionLocal
from ..models.documents import Document
from ..services.semantic_search import embed_document


logger = logging.getLogger(__name__)


@contextmanager
def session_scope():
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def run_embedding_job() -> int:
    """Embed chunks for documents not yet marked as embedded; returns the embeddings computed."""
    computed = 0
    with session_scope() as session:
        pending = session.query(Document).filter(Document.is_embedded.is_(False)).all()
        for document in pending:
            computed += embed_document(session, document)
    if computed:
        logger.info("Embedded %s chunks across %s documents", computed, len(pending))
    return computed


def configure_scheduler() -> BlockingScheduler:
    scheduler = BlockingScheduler(timezone="UTC")
    scheduler.add_job(run_embedding_job, IntervalTrigger(minutes=settings.embedding_worker_interval_minutes))
    return scheduler


def main() -> None:
    logging.basicConfig(level=logging.INFO, handlers=[logging.StreamHandler(sys.stdout)])

    if len(sys.argv) > 1 and sys.argv[1] == "run-once":
        logger.info("Running embedding worker once")
        run_embedding_job()
        return

    scheduler = configure_scheduler()
    logger.info("Starting embedding worker scheduler")
    scheduler.start()


if __name__ == "__main__":
    main()
