"""Disk storage for uploaded requirement documents."""
from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path
from typing import BinaryIO
from uuid import uuid4

from backend.core.errors import StorageFailure
from backend.domain import FileDescriptor

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def sanitise_filename(filename: str) -> str:
    safe = _UNSAFE_CHARS.sub("_", Path(filename).name)
    return safe or "upload.bin"


class UploadStorage:
    """Writes uploads under a collision-resistant ``<uuid>_<name>`` filename."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def ensure_root(self) -> Path:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.exception("Could not create upload directory %s", self.root)
            raise StorageFailure("upload storage unavailable") from exc
        return self.root

    def save(self, filename: str, source: BinaryIO, content_type: str | None = None) -> FileDescriptor:
        """Persist an uploaded file and describe where it landed."""

        root = self.ensure_root()
        stored_name = f"{uuid4().hex}_{sanitise_filename(filename)}"
        target = root / stored_name
        try:
            with target.open("wb") as buffer:
                shutil.copyfileobj(source, buffer)
            size = target.stat().st_size
        except OSError as exc:
            logger.exception("Failed to store upload %s", filename)
            raise StorageFailure("Upload failed") from exc

        return FileDescriptor(
            original_name=Path(filename).name,
            stored_name=stored_name,
            path=f"/uploads/{stored_name}",
            size=size,
            content_type=content_type,
        )

    def resolve(self, stored_name: str) -> Path | None:
        path = self.root / Path(stored_name).name
        if not path.is_file():
            return None
        return path
