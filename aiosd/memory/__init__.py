"""Memory package: persisted user feedback."""

from .feedback import FeedbackEntry, FeedbackStore

__all__ = [
    "FeedbackEntry",
    "FeedbackStore",
]
