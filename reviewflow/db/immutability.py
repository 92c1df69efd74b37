"""ORM-level append-only enforcement for the review audit trail.

History entries and signatures are written once and never changed. Two
layers enforce this:

  Layer 1: this module (SQLAlchemy mapper events, fire before SQL is sent)
  Layer 2: PostgreSQL triggers installed by migration 0001

Raw SQL bypasses layer 1; layer 2 catches it.
"""

import logging

from sqlalchemy import event
from sqlalchemy.orm import object_session

from reviewflow.db.models.history import ReviewHistory
from reviewflow.db.models.signature import ReviewSignature

logger = logging.getLogger(__name__)


class ImmutableRecordError(Exception):
    """Raised when code attempts to modify or delete an append-only record."""

    def __init__(self, entity_type: str, entity_id: str, operation: str):
        super().__init__(f"{entity_type} {entity_id} is append-only; {operation} is not allowed")
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.operation = operation


def _block_update(mapper, connection, target):
    session = object_session(target)
    # before_update also fires for objects dirtied only through collections
    if session is not None and not session.is_modified(target, include_collections=False):
        return
    entity_type = type(target).__name__
    logger.error("Blocked UPDATE of append-only %s %s", entity_type, target.id)
    raise ImmutableRecordError(entity_type, str(target.id), "UPDATE")


def _block_delete(mapper, connection, target):
    entity_type = type(target).__name__
    logger.error("Blocked DELETE of append-only %s %s", entity_type, target.id)
    raise ImmutableRecordError(entity_type, str(target.id), "DELETE")


APPEND_ONLY_MODELS = (ReviewHistory, ReviewSignature)


def register_immutability_listeners() -> None:
    """Attach the append-only listeners. Safe to call more than once."""
    for model in APPEND_ONLY_MODELS:
        if not event.contains(model, "before_update", _block_update):
            event.listen(model, "before_update", _block_update)
        if not event.contains(model, "before_delete", _block_delete):
            event.listen(model, "before_delete", _block_delete)
