import logging
import os
import re
import time
from enum import Enum
from uuid import uuid4

from app.core.config import settings

logger = logging.getLogger(__name__)

FILENAME_RE = re.compile(r"^[a-f0-9-]+\.png$")


class RemovalOutcome(str, Enum):
    REMOVED = "removed"
    NOT_FOUND = "not_found"
    FAILED = "failed"


class InvalidFilename(ValueError):
    pass


class HandwritingStorage:
    """PNG files for handwritten notes, stored flat under one directory.

    Filenames are generated here and treated as opaque tokens everywhere else.
    """

    def __init__(self, root: str | None = None) -> None:
        self.root = os.path.abspath(root or settings.handwriting_dir)

    def path_for(self, filename: str) -> str:
        if not FILENAME_RE.match(filename):
            raise InvalidFilename(filename)
        return os.path.join(self.root, filename)

    def exists(self, filename: str) -> bool:
        return os.path.isfile(self.path_for(filename))

    def store(self, data: bytes) -> str:
        os.makedirs(self.root, exist_ok=True)
        filename = f"{uuid4()}.png"
        with open(self.path_for(filename), "wb") as f:
            f.write(data)
        return filename

    def remove(self, filename: str) -> RemovalOutcome:
        try:
            os.remove(self.path_for(filename))
        except FileNotFoundError:
            return RemovalOutcome.NOT_FOUND
        except (OSError, InvalidFilename):
            logger.warning("handwriting_remove_failed filename=%s", filename, exc_info=True)
            return RemovalOutcome.FAILED
        return RemovalOutcome.REMOVED

    def list_older_than(self, cutoff_timestamp: float) -> list[str]:
        if not os.path.isdir(self.root):
            return []
        stale = []
        for entry in os.scandir(self.root):
            if entry.is_file() and FILENAME_RE.match(entry.name) and entry.stat().st_mtime < cutoff_timestamp:
                stale.append(entry.name)
        return sorted(stale)

    def is_writable(self) -> bool:
        os.makedirs(self.root, exist_ok=True)
        return os.access(self.root, os.W_OK)


def grace_cutoff(grace_minutes: int, now: float | None = None) -> float:
    return (now if now is not None else time.time()) - grace_minutes * 60
