"""Placement of uploaded driver documents on disk."""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path
from typing import Iterable, Mapping

from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from src.domain.exceptions import EntityValidationError

logger = logging.getLogger(__name__)

_SAFE_PART = re.compile(r"^[A-Za-z0-9_-]+$")


class FilePlacement:
    """Moves uploads to ``{root}/{owner_id}.{field_key}.{extension}``."""

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def target_path(self, owner_id: int, field_key: str, filename: str) -> Path:
        extension = (filename or "").rsplit(".", 1)[-1]
        errors = {}
        if not _SAFE_PART.match(field_key):
            errors[field_key] = "Invalid upload field name."
        elif not _SAFE_PART.match(extension):
            errors[field_key] = "Invalid file extension."
        if errors:
            raise EntityValidationError(errors)
        return self.root / f"{owner_id}.{field_key}.{extension}"

    async def place(self, owner_id: int, uploads: Mapping[str, UploadFile]) -> dict[str, Path]:
        placed: dict[str, Path] = {}
        targets = {
            key: self.target_path(owner_id, key, upload.filename)
            for key, upload in uploads.items()
        }
        await run_in_threadpool(self.root.mkdir, parents=True, exist_ok=True)
        for key, upload in uploads.items():
            await upload.seek(0)
            try:
                await run_in_threadpool(self._copy, upload, targets[key])
            except Exception:
                await self.discard([*placed.values(), targets[key]])
                raise
            # closing the upload discards its temporary spool file
            await upload.close()
            placed[key] = targets[key]
            logger.info("Stored %s for user %s at %s", key, owner_id, targets[key])
        return placed

    async def discard(self, paths: Iterable[Path]) -> None:
        """Remove previously placed files; missing files are ignored."""
        for path in paths:
            try:
                await run_in_threadpool(path.unlink, missing_ok=True)
            except OSError:
                logger.exception("Could not remove %s", path)
            else:
                logger.info("Removed %s", path)

    @staticmethod
    def _copy(upload: UploadFile, target: Path) -> None:
        with target.open("wb") as fh:
            shutil.copyfileobj(upload.file, fh)
