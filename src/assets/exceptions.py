"""Typed failures raised by the transfer workflow.

Field validation failures use ``django.core.exceptions.ValidationError``
and permission failures use ``PermissionDenied``; the classes below
cover the remaining cases a caller has to tell apart.
"""

from django.core.exceptions import ObjectDoesNotExist


class NotFoundError(ObjectDoesNotExist):
    """The referenced transfer does not exist."""


class ConflictError(Exception):
    """The requested transition is illegal in the entity's current state."""

    def __init__(self, message, current_status=None):
        super().__init__(message)
        self.message = message
        self.current_status = current_status


class TransportError(Exception):
    """The backing store could not be reached. Nothing is assumed changed."""


class AuditLogError(Exception):
    """An audit entry could not be written for a successful action."""

    def __init__(self, action, entity_id, cause=None):
        super().__init__(
            f"Audit log write failed for {action} #{entity_id}: {cause}"
        )
        self.action = action
        self.entity_id = entity_id
        self.cause = cause


class InvalidStepError(Exception):
    """A wizard transition was invoked from a step that does not allow it."""
