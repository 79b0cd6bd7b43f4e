"""Propagate the acting staff member's identity using contextvars.

Authentication happens upstream. By the time a request reaches the billing
API the gateway has resolved the staff member, and the middleware puts their
id here so audit entries can be attributed without threading it through
every call.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from uuid import UUID

_current_user_id: ContextVar[UUID | None] = ContextVar("current_user_id", default=None)


def get_current_user_id() -> UUID | None:
    """
    Current staff member's ID, or None outside a request.

    None is valid: scheduled jobs such as the overdue sweep act as the system.
    """
    return _current_user_id.get()


def set_current_user_id(user_id: UUID) -> None:
    """Set current staff ID. Called by request middleware."""
    _current_user_id.set(user_id)


def clear_current_user_id() -> None:
    """
    Clear user context.

    Must be called in a finally block to prevent context leakage.
    """
    _current_user_id.set(None)


@contextmanager
def user_context(user_id: UUID):
    """
    Temporarily act as a staff member.

    Example:
        with user_context(staff_id):
            invoice_service.send(invoice_id)  # audit entry attributed to staff_id
    """
    token = _current_user_id.set(user_id)
    try:
        yield
    finally:
        _current_user_id.reset(token)
