from __future__ import annotations

import datetime as dt
import logging
import os
import re
import uuid
from typing import Protocol

from .config import BLOB_BASE_URL, BLOB_ROOT
from .errors import TransientFailure

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


class BlobStore(Protocol):
    def upload(self, content: bytes, container_hint: str, filename: str = "") -> str:
        ...


def _safe_name(filename: str) -> str:
    base = os.path.basename(filename or "").strip()
    return _UNSAFE.sub("_", base) or "file"


class LocalBlobStore:
    """Stores uploads under `root/<container>/` and returns their public URL."""

    def __init__(self, root: str = BLOB_ROOT, base_url: str = BLOB_BASE_URL) -> None:
        self.root = root
        self.base_url = base_url.rstrip("/")

    def upload(self, content: bytes, container_hint: str, filename: str = "") -> str:
        container = _safe_name(container_hint)
        stamp = dt.datetime.now(dt.timezone.utc).strftime("%Y%m%d_%H%M%S")
        name = f"{stamp}_{uuid.uuid4().hex[:8]}_{_safe_name(filename)}"
        directory = os.path.join(self.root, container)
        try:
            os.makedirs(directory, exist_ok=True)
            with open(os.path.join(directory, name), "wb") as fh:
                fh.write(content)
        except OSError as e:
            raise TransientFailure(f"upload to {container} failed: {e}") from e
        logger.info("stored %s byte(s) in %s/%s", len(content), container, name)
        return f"{self.base_url}/{container}/{name}"
