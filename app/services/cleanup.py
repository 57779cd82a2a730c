import logging
from abc import ABC, abstractmethod

from kombu.exceptions import OperationalError

from app.core.config import settings
from app.storage.handwriting import HandwritingStorage, RemovalOutcome

logger = logging.getLogger(__name__)


class CleanupScheduler(ABC):
    @abstractmethod
    def schedule(self, filename: str) -> None:
        raise NotImplementedError

    def __call__(self, filename: str) -> None:
        self.schedule(filename)


class InlineCleanupScheduler(CleanupScheduler):
    def __init__(self, storage: HandwritingStorage) -> None:
        self._storage = storage

    def schedule(self, filename: str) -> None:
        outcome = self._storage.remove(filename)
        if outcome == RemovalOutcome.FAILED:
            logger.warning("handwriting_cleanup_failed filename=%s", filename)
        else:
            logger.info("handwriting_cleanup filename=%s outcome=%s", filename, outcome.value)


class CeleryCleanupScheduler(CleanupScheduler):
    """Hands removal to a worker; removes in-process when the broker is down."""

    def __init__(self, fallback: CleanupScheduler) -> None:
        self._fallback = fallback

    def schedule(self, filename: str) -> None:
        from app.tasks.handwriting import remove_handwriting_task

        try:
            remove_handwriting_task.delay(filename)
        except OperationalError:
            logger.warning("handwriting_cleanup_broker_unavailable filename=%s", filename)
            self._fallback.schedule(filename)


def build_cleanup_scheduler(storage: HandwritingStorage) -> CleanupScheduler:
    inline = InlineCleanupScheduler(storage)
    if settings.cleanup_backend.strip().lower() == "celery":
        return CeleryCleanupScheduler(fallback=inline)
    return inline
