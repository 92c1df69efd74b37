"""Initial schema: deliverables, versions, workflows, steps, signatures, history

Revision ID: 0001
Revises: None
Create Date: 2026-10-18

This migration:
1. Creates the deliverable catalog and review workflow tables
2. Adds the deferred deliverables.active_workflow_id foreign key
3. Creates triggers that make review_history and review_signatures append-only
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


APPEND_ONLY_TABLES = ("review_history", "review_signatures")


def upgrade() -> None:
    """Create all review tables."""

    # --- deliverables (active_workflow_id FK added once review_workflows exists) ---
    op.create_table(
        "deliverables",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("artifact_ref", sa.Text(), nullable=False),
        sa.Column("current_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("active_workflow_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id", name="pk_deliverables"),
    )
    op.create_index("ix_deliverables_project_id", "deliverables", ["project_id"])
    op.create_index("ix_deliverables_created_at", "deliverables", ["created_at"])

    # --- deliverable_versions (FK -> deliverables) ---
    op.create_table(
        "deliverable_versions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("deliverable_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("artifact_ref", sa.Text(), nullable=False),
        sa.Column("change_log", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id", name="pk_deliverable_versions"),
        sa.ForeignKeyConstraint(
            ["deliverable_id"], ["deliverables.id"],
            name="fk_deliverable_versions_deliverable_id", ondelete="CASCADE",
        ),
        sa.UniqueConstraint("deliverable_id", "version_number", name="uq_deliverable_versions_number"),
    )
    op.create_index("ix_deliverable_versions_deliverable_id", "deliverable_versions", ["deliverable_id"])

    # --- review_workflows (FK -> deliverables, self) ---
    op.create_table(
        "review_workflows",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("deliverable_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        sa.Column("previous_workflow_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_review_workflows"),
        sa.ForeignKeyConstraint(
            ["deliverable_id"], ["deliverables.id"],
            name="fk_review_workflows_deliverable_id", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["previous_workflow_id"], ["review_workflows.id"],
            name="fk_review_workflows_previous_workflow_id", ondelete="SET NULL",
        ),
        sa.UniqueConstraint("deliverable_id", "version_number", name="uq_review_workflows_version"),
    )
    op.create_index("ix_review_workflows_deliverable_id", "review_workflows", ["deliverable_id"])
    op.create_index("ix_review_workflows_status", "review_workflows", ["status"])
    op.create_index("ix_review_workflows_created_at", "review_workflows", ["created_at"])

    op.create_foreign_key(
        "fk_deliverables_active_workflow_id",
        "deliverables",
        "review_workflows",
        ["active_workflow_id"],
        ["id"],
        ondelete="SET NULL",
    )

    # --- review_steps (FK -> review_workflows) ---
    op.create_table(
        "review_steps",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("workflow_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("requires_signature", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("approver_type", sa.String(50), nullable=False, server_default="any"),
        sa.Column("approver_id", sa.String(255), nullable=True),
        sa.Column("approver_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("resolved_by", sa.String(255), nullable=True),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_review_steps"),
        sa.ForeignKeyConstraint(
            ["workflow_id"], ["review_workflows.id"],
            name="fk_review_steps_workflow_id", ondelete="CASCADE",
        ),
        sa.UniqueConstraint("workflow_id", "sequence", name="uq_review_steps_sequence"),
    )
    op.create_index("ix_review_steps_workflow_id", "review_steps", ["workflow_id"])
    op.create_index("ix_review_steps_status", "review_steps", ["status"])

    # --- review_signatures (FK -> review_workflows, review_steps) ---
    op.create_table(
        "review_signatures",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("workflow_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("step_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("signer_id", sa.String(255), nullable=False),
        sa.Column("signer_name", sa.String(255), nullable=True),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("method", sa.String(20), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("signed_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id", name="pk_review_signatures"),
        sa.ForeignKeyConstraint(
            ["workflow_id"], ["review_workflows.id"],
            name="fk_review_signatures_workflow_id", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["step_id"], ["review_steps.id"],
            name="fk_review_signatures_step_id", ondelete="CASCADE",
        ),
        sa.UniqueConstraint("step_id", "signer_id", name="uq_review_signatures_step_signer"),
        sa.UniqueConstraint("workflow_id", "sequence", name="uq_review_signatures_sequence"),
    )
    op.create_index("ix_review_signatures_workflow_id", "review_signatures", ["workflow_id"])
    op.create_index("ix_review_signatures_step_id", "review_signatures", ["step_id"])
    op.create_index("ix_review_signatures_signed_at", "review_signatures", ["signed_at"])

    # --- review_history (FK -> review_workflows, review_steps) ---
    op.create_table(
        "review_history",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("workflow_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("step_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("actor_id", sa.String(255), nullable=True),
        sa.Column("actor_type", sa.String(50), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("extra_data", sa.JSON(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id", name="pk_review_history"),
        sa.ForeignKeyConstraint(
            ["workflow_id"], ["review_workflows.id"],
            name="fk_review_history_workflow_id", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["step_id"], ["review_steps.id"],
            name="fk_review_history_step_id", ondelete="SET NULL",
        ),
        sa.UniqueConstraint("workflow_id", "sequence", name="uq_review_history_sequence"),
    )
    op.create_index("ix_review_history_workflow_id", "review_history", ["workflow_id"])
    op.create_index("ix_review_history_step_id", "review_history", ["step_id"])
    op.create_index("ix_review_history_action", "review_history", ["action"])
    op.create_index("ix_review_history_created_at", "review_history", ["created_at"])

    # --- append-only enforcement ---
    op.execute("""
        CREATE OR REPLACE FUNCTION prevent_review_record_change()
        RETURNS TRIGGER AS $trigger$
        BEGIN
            RAISE EXCEPTION '% rows are append-only; % is not allowed. Record ID: %',
                TG_TABLE_NAME, TG_OP, OLD.id;
        END;
        $trigger$ LANGUAGE plpgsql;
    """)

    for table in APPEND_ONLY_TABLES:
        op.execute(f"""
            CREATE TRIGGER {table}_prevent_update
            BEFORE UPDATE ON {table}
            FOR EACH ROW
            EXECUTE FUNCTION prevent_review_record_change();
        """)
        op.execute(f"""
            CREATE TRIGGER {table}_prevent_delete
            BEFORE DELETE ON {table}
            FOR EACH ROW
            EXECUTE FUNCTION prevent_review_record_change();
        """)


def downgrade() -> None:
    """Drop all review tables."""

    for table in APPEND_ONLY_TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS {table}_prevent_update ON {table};")
        op.execute(f"DROP TRIGGER IF EXISTS {table}_prevent_delete ON {table};")
    op.execute("DROP FUNCTION IF EXISTS prevent_review_record_change();")

    op.drop_table("review_history")
    op.drop_table("review_signatures")
    op.drop_table("review_steps")
    op.drop_constraint("fk_deliverables_active_workflow_id", "deliverables", type_="foreignkey")
    op.drop_table("review_workflows")
    op.drop_table("deliverable_versions")
    op.drop_table("deliverables")
