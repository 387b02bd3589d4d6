"""Domain error taxonomy.

The API layer maps each class to a response category:

* ``NotFoundError``          -> 404
* ``EntityValidationError``  -> 422 (per-field messages)
* ``InvalidSearchError``     -> 400
* ``AuthorizationDenied``    -> 403
* ``InvalidStateTransition`` -> 409
* ``PersistenceFault``       -> 500 (generic body)
"""

from __future__ import annotations

from typing import Mapping


class NotFoundError(Exception):
    """Raised when a referenced entity does not exist."""

    def __init__(self, resource: str, identifier) -> None:
        super().__init__(f"{resource} {identifier} not found")
        self.resource = resource
        self.identifier = identifier


class DriverNotFoundError(NotFoundError):
    def __init__(self, driver_id) -> None:
        super().__init__("Driver", driver_id)


class EntityValidationError(Exception):
    """Structured validation failure: one message per offending field."""

    def __init__(self, errors: Mapping[str, str], message: str = "Validation failed") -> None:
        super().__init__(message)
        self.message = message
        self.errors = dict(errors)

    def form_errors(self) -> dict[str, dict]:
        """Per-field markers the form layer uses to flag inputs invalid."""
        return {
            field: {"message": text, "invalid": True}
            for field, text in self.errors.items()
        }


class InvalidPatchError(EntityValidationError):
    """A patch operation could not be applied; nothing was changed."""

    def __init__(self, errors: Mapping[str, str]) -> None:
        super().__init__(errors, message="Patch could not be applied")


class InvalidSearchError(Exception):
    """Search parameters that cannot be turned into a safe predicate."""

    def __init__(self, fields: Mapping[str, str]) -> None:
        super().__init__("Invalid search parameters: " + ", ".join(sorted(fields)))
        self.fields = dict(fields)


class AuthorizationDenied(Exception):
    """Caller is not allowed to perform the operation."""


class InvalidStateTransition(Exception):
    """Raised when a ride status change violates the state machine."""


class PersistenceFault(Exception):
    """Unexpected storage failure. Details are logged, never returned."""
