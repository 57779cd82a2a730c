import logging

from sqlalchemy.orm import Session

from app.core.config import settings
from app.db import reservation_store as store
from app.db.session import SessionLocal
from app.storage.handwriting import HandwritingStorage, RemovalOutcome, grace_cutoff
from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def purge_orphaned_handwriting(
    db: Session,
    storage: HandwritingStorage,
    now: float | None = None,
) -> int:
    """Remove uploaded PNGs that no reservation points at once they are past the grace period."""
    cutoff = grace_cutoff(settings.handwriting_orphan_grace_minutes, now=now)
    candidates = storage.list_older_than(cutoff)
    if not candidates:
        return 0

    referenced = store.list_handwriting_references(db)
    removed = 0
    for filename in candidates:
        if filename in referenced:
            continue
        if storage.remove(filename) == RemovalOutcome.REMOVED:
            removed += 1
    if removed:
        logger.info("handwriting_orphans_purged count=%s", removed)
    return removed


@celery_app.task(name="handwriting.remove_file")
def remove_handwriting_task(filename: str) -> dict[str, str]:
    outcome = HandwritingStorage().remove(filename)
    if outcome == RemovalOutcome.FAILED:
        logger.warning("handwriting_cleanup_failed filename=%s", filename)
    return {"filename": filename, "outcome": outcome.value}


@celery_app.task(name="handwriting.purge_orphans")
def purge_orphaned_handwriting_task() -> dict[str, int]:
    db = SessionLocal()
    try:
        removed = purge_orphaned_handwriting(db=db, storage=HandwritingStorage())
        return {"removed": removed}
    finally:
        db.close()
