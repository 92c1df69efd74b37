"""Collaborator services for the review engine."""

from reviewflow.services.notifications import NotificationDispatcher, ReviewEvent

__all__ = [
    "NotificationDispatcher",
    "ReviewEvent",
]
