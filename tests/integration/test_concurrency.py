"""Race-safety tests: two writers resolving the same current step.

The SQLite tests use two sessions on one database file and interleave them
by hand, which covers both guards deterministically: the fresh re-read of
step state under the workflow lock, and the conditional ``UPDATE ... WHERE
status = 'pending'`` for a writer whose check already passed. The threaded
test needs row locks and only runs against PostgreSQL.
"""

import os
import threading

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from reviewflow.core.identity import Actor
from reviewflow.core.review.controller import WorkflowController
from reviewflow.core.review.errors import ReviewError, StepNotActiveError, WorkflowAlreadyTerminalError
from reviewflow.core.review.sequencer import StepSequencer
from reviewflow.db.base import Base
from reviewflow.db.models import ReviewHistory, ReviewStep, ReviewWorkflow

from tests.factories import create_workflow


pytestmark = [pytest.mark.db, pytest.mark.integration]


class StaleSequencer(StepSequencer):
    """Sequencer whose current-step check always passes, as if read before the other writer committed."""

    def require_current(self, workflow, step):
        return None


@pytest.fixture()
def file_engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def make_session(file_engine):
    factory = sessionmaker(bind=file_engine, autoflush=False, expire_on_commit=False)
    sessions = []

    def _make():
        session = factory()
        sessions.append(session)
        return session

    yield _make
    for session in sessions:
        session.close()


@pytest.fixture()
def seeded(make_session):
    """Committed three-step workflow; returns (workflow_id, first_step_id)."""
    session = make_session()
    workflow = create_workflow(session)
    ids = (workflow.id, workflow.steps[0].id)
    session.commit()
    return ids


def _load(session, workflow_id):
    return session.get(ReviewWorkflow, workflow_id)


def _history_count(session, workflow_id):
    return session.execute(
        select(func.count(ReviewHistory.id)).where(ReviewHistory.workflow_id == workflow_id)
    ).scalar_one()


class TestTwoWriters:

    def test_loser_sees_fresh_state(self, make_session, seeded):
        workflow_id, step_id = seeded
        session_a, session_b = make_session(), make_session()

        # Both writers load the workflow before either acts
        workflow_a = _load(session_a, workflow_id)
        workflow_b = _load(session_b, workflow_id)
        assert [s.status for s in workflow_b.steps][0] == "pending"

        WorkflowController(session_a).approve_step(workflow_a, step_id, Actor(id="alice"))
        session_a.commit()

        with pytest.raises(StepNotActiveError):
            WorkflowController(session_b).approve_step(workflow_b, step_id, Actor(id="bob"))
        session_b.rollback()

        check = make_session()
        step = check.get(ReviewStep, step_id)
        assert step.status == "approved"
        assert step.resolved_by == "alice"
        assert _history_count(check, workflow_id) == 1
        assert check.get(ReviewWorkflow, workflow_id).status == "in_progress"

    def test_conditional_update_rejects_stale_writer(self, make_session, seeded):
        workflow_id, step_id = seeded
        session_a, session_b = make_session(), make_session()
        workflow_a = _load(session_a, workflow_id)
        workflow_b = _load(session_b, workflow_id)

        WorkflowController(session_a).approve_step(workflow_a, step_id, Actor(id="alice"))
        session_a.commit()

        stale = WorkflowController(session_b, sequencer=StaleSequencer())
        with pytest.raises(StepNotActiveError, match="concurrently"):
            stale.approve_step(workflow_b, step_id, Actor(id="bob"))
        session_b.rollback()

        check = make_session()
        assert check.get(ReviewStep, step_id).resolved_by == "alice"
        assert _history_count(check, workflow_id) == 1

    def test_conflicting_actions(self, make_session, seeded):
        """An approve and a reject racing on one step: exactly one lands."""
        workflow_id, step_id = seeded
        session_a, session_b = make_session(), make_session()
        workflow_a = _load(session_a, workflow_id)
        workflow_b = _load(session_b, workflow_id)

        WorkflowController(session_a).reject_step(workflow_a, step_id, Actor(id="alice"), "no")
        session_a.commit()

        with pytest.raises(ReviewError):
            WorkflowController(session_b, sequencer=StaleSequencer()).approve_step(
                workflow_b, step_id, Actor(id="bob"),
            )
        session_b.rollback()

        check = make_session()
        assert check.get(ReviewWorkflow, workflow_id).status == "rejected"
        assert check.get(ReviewStep, step_id).status == "rejected"
        assert _history_count(check, workflow_id) == 1

    def test_race_on_last_step_reports_terminal(self, make_session):
        """Losing the race for the final step finds the workflow already closed."""
        setup = make_session()
        workflow = create_workflow(setup, steps=["Only"])
        workflow_id, step_id = workflow.id, workflow.steps[0].id
        setup.commit()

        session_a, session_b = make_session(), make_session()
        workflow_a = _load(session_a, workflow_id)
        workflow_b = _load(session_b, workflow_id)

        WorkflowController(session_a).approve_step(workflow_a, step_id, Actor(id="alice"))
        session_a.commit()

        with pytest.raises(WorkflowAlreadyTerminalError):
            WorkflowController(session_b).approve_step(workflow_b, step_id, Actor(id="bob"))
        session_b.rollback()

        check = make_session()
        assert check.get(ReviewStep, step_id).resolved_by == "alice"
        assert _history_count(check, workflow_id) == 1


@pytest.mark.postgres
@pytest.mark.skipif(
    not os.environ.get("TEST_DATABASE_URL", "").startswith("postgresql"),
    reason="needs TEST_DATABASE_URL pointing at PostgreSQL",
)
def test_parallel_approvals_postgres():
    engine = create_engine(os.environ["TEST_DATABASE_URL"])
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    try:
        with factory() as session:
            workflow = create_workflow(session)
            workflow_id, step_id = workflow.id, workflow.steps[0].id
            session.commit()

        barrier = threading.Barrier(8)
        outcomes = []
        lock = threading.Lock()

        def worker(n):
            with factory() as session:
                workflow = session.get(ReviewWorkflow, workflow_id)
                barrier.wait()
                try:
                    WorkflowController(session).approve_step(workflow, step_id, Actor(id=f"user-{n}"))
                    session.commit()
                    result = "ok"
                except StepNotActiveError:
                    session.rollback()
                    result = "lost"
                with lock:
                    outcomes.append(result)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("lost") == 7
        with factory() as session:
            assert _history_count(session, workflow_id) == 1
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()
