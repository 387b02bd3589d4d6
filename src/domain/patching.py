"""
JSON Patch (RFC 6902) helpers over plain entity documents.

Operations are applied to a deep copy, so a failing operation anywhere in
the sequence leaves the source document untouched.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence

import jsonpatch
import jsonpointer

from .exceptions import InvalidPatchError

IDENTITY_FIELDS = ("id", "_id")


def _top_level(path: Any) -> str:
    if not isinstance(path, str) or not path.startswith("/"):
        return ""
    return path[1:].split("/", 1)[0].replace("~1", "/").replace("~0", "~")


def strip_identity_ops(
    operations: Iterable[Mapping[str, Any]],
    identity_fields: Sequence[str] = IDENTITY_FIELDS,
) -> list[dict]:
    """Drop every operation that would touch an identity field."""
    kept = []
    for op in operations:
        if not isinstance(op, Mapping):
            raise InvalidPatchError({"patch": "Each patch operation must be an object"})
        if _top_level(op.get("path")) in identity_fields:
            continue
        if _top_level(op.get("from")) in identity_fields and op.get("op") == "move":
            continue
        kept.append(dict(op))
    return kept


def apply_operations(document: Mapping[str, Any], operations: Sequence[Mapping[str, Any]]) -> dict:
    """Return a patched copy of *document*, or raise ``InvalidPatchError``."""
    try:
        patch = jsonpatch.JsonPatch(list(operations))
        return patch.apply(dict(document), in_place=False)
    except (jsonpatch.JsonPatchException, jsonpointer.JsonPointerException, TypeError) as exc:
        field = _offending_field(operations) or "patch"
        raise InvalidPatchError({field: str(exc)}) from exc


def _offending_field(operations: Sequence[Mapping[str, Any]]) -> str:
    # jsonpatch does not report which operation failed; name the only
    # field involved when the patch touches exactly one.
    fields = {_top_level(op.get("path")) for op in operations if isinstance(op, Mapping)}
    fields.discard("")
    return fields.pop() if len(fields) == 1 else ""


def changed_fields(before: Mapping[str, Any], after: Mapping[str, Any]) -> dict[str, Any]:
    """Fields of *after* whose value differs from *before*."""
    return {key: value for key, value in after.items() if before.get(key) != value}
