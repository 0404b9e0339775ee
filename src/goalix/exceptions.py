"""Progression error taxonomy.

The HTTP layer maps these in ``goalix.middleware.error_handler``.
"""

from __future__ import annotations


class ProgressionError(Exception):
    """Base class for errors raised by the progression engine."""

    status_code = 400


class IllegalStateTransition(ProgressionError):
    """The requested transition is not valid from the entity's current state."""

    status_code = 409


class NotFound(ProgressionError):
    """An unknown task, user, goal, challenge or badge slug was referenced."""

    status_code = 404
