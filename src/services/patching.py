"""
Patch Applier
=============

load -> strip identity ops -> apply JSON Patch to a copy -> validate the
patched document -> assign the changed fields -> ``repository.save``.

Nothing touches the entity until the whole patch applied cleanly and the
result validated, and the save happens inside the caller's unit of work,
so any failure leaves the stored record as it was.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

from src.domain.exceptions import NotFoundError
from src.domain.patching import apply_operations, changed_fields, strip_identity_ops
from src.infrastructure.models import to_document
from src.infrastructure.repositories import BaseRepository
from src.infrastructure.validation import validate_document

logger = logging.getLogger(__name__)


class PatchApplier:
    def __init__(self, repository: BaseRepository, resource: str):
        self.repository = repository
        self.resource = resource

    async def apply(self, entity_id: int, operations: Sequence[dict[str, Any]]):
        entity = await self.repository.find_by_id(entity_id)
        if entity is None:
            raise NotFoundError(self.resource, entity_id)

        operations = strip_identity_ops(operations)
        before = to_document(entity)
        patched = apply_operations(before, operations)
        validated = validate_document(self.repository.document, patched)

        changes = changed_fields(before, validated.model_dump(exclude={"id"}))
        for key, value in changes.items():
            setattr(entity, key, value)
        logger.info(
            "Patching %s %s: %s", self.resource, entity_id, ", ".join(sorted(changes)) or "no changes"
        )
        return await self.repository.save(entity)
