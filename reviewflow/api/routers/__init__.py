"""API routers for the review engine."""

from . import deliverables
from . import workflows
from . import health

__all__ = [
    "deliverables",
    "workflows",
    "health",
]
