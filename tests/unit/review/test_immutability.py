"""Tests for append-only enforcement on history and signatures."""

import pytest

from reviewflow.core.review.ledger import HistoryLedger
from reviewflow.core.review.signatures import SignatureStore
from reviewflow.core.review.states import HistoryAction
from reviewflow.db.immutability import ImmutableRecordError, register_immutability_listeners

from tests.factories import create_workflow


class TestHistoryImmutability:

    def test_update_blocked(self, db_session, alice):
        workflow = create_workflow(db_session)
        entry = HistoryLedger(db_session).append(workflow.id, HistoryAction.STEP_APPROVED, actor=alice)

        entry.comments = "rewritten"
        with pytest.raises(ImmutableRecordError) as exc_info:
            db_session.flush()

        assert exc_info.value.operation == "UPDATE"
        assert exc_info.value.entity_type == "ReviewHistory"

    def test_delete_blocked(self, db_session, alice):
        workflow = create_workflow(db_session)
        entry = HistoryLedger(db_session).append(workflow.id, HistoryAction.STEP_APPROVED, actor=alice)

        db_session.delete(entry)
        with pytest.raises(ImmutableRecordError) as exc_info:
            db_session.flush()
        assert exc_info.value.operation == "DELETE"


class TestSignatureImmutability:

    def test_update_blocked(self, db_session, bob):
        workflow = create_workflow(db_session)
        signature = SignatureStore(db_session).add_signature(workflow, workflow.steps[0], bob, "sig", "typed")

        signature.payload = "forged"
        with pytest.raises(ImmutableRecordError):
            db_session.flush()

    def test_delete_blocked(self, db_session, bob):
        workflow = create_workflow(db_session)
        signature = SignatureStore(db_session).add_signature(workflow, workflow.steps[0], bob, "sig", "typed")

        db_session.delete(signature)
        with pytest.raises(ImmutableRecordError):
            db_session.flush()


def test_registration_is_idempotent(db_session, alice):
    register_immutability_listeners()
    register_immutability_listeners()

    workflow = create_workflow(db_session)
    entry = HistoryLedger(db_session).append(workflow.id, HistoryAction.STEP_APPROVED, actor=alice)
    entry.comments = "again"
    with pytest.raises(ImmutableRecordError):
        db_session.flush()
