"""initial sweepstake schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=100), nullable=True),
        sa.Column("balance", sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("balance >= 0", name=op.f("ck_users_balance_non_negative")),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_users")),
        sa.UniqueConstraint("email", name=op.f("uq_users_email")),
        sa.UniqueConstraint("username", name=op.f("uq_users_username")),
    )
    op.create_table(
        "sweepstakes",
        sa.Column("id", sa.String(length=40), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("max_participants", sa.Integer(), nullable=False),
        sa.Column("entry_fee", sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column("house_fee_fraction", sa.Numeric(precision=5, scale=4), nullable=False),
        sa.Column("prize_pool", sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("winner_participant_id", sa.String(length=40), nullable=True),
        sa.Column("winner_user_id", ID_TYPE, nullable=True),
        sa.Column("winner_index", sa.Integer(), nullable=True),
        sa.Column("algorithm", sa.String(length=64), nullable=True),
        sa.Column("seed", sa.Text(), nullable=True),
        sa.Column("hash", sa.String(length=64), nullable=True),
        sa.Column("proof", sa.Text(), nullable=True),
        sa.Column("participant_snapshot", sa.JSON(), nullable=True),
        sa.Column("executed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_reason", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["winner_user_id"],
            ["users.id"],
            name=op.f("fk_sweepstakes_winner_user_id_users"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_sweepstakes")),
    )
    op.create_index(
        "ix_sweepstakes_status_end_time", "sweepstakes", ["status", "end_time"], unique=False
    )
    op.create_index(
        "ix_sweepstakes_status_start_time", "sweepstakes", ["status", "start_time"], unique=False
    )
    op.create_table(
        "sweepstake_participants",
        sa.Column("id", sa.String(length=40), nullable=False),
        sa.Column("sweepstake_id", sa.String(length=40), nullable=False),
        sa.Column("user_id", ID_TYPE, nullable=False),
        sa.Column("entry_fee", sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["sweepstake_id"],
            ["sweepstakes.id"],
            name=op.f("fk_sweepstake_participants_sweepstake_id_sweepstakes"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name=op.f("fk_sweepstake_participants_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_sweepstake_participants")),
        sa.UniqueConstraint("sweepstake_id", "user_id", name="uq_participant_per_user"),
    )
    op.create_index(
        op.f("ix_sweepstake_participants_sweepstake_id"),
        "sweepstake_participants",
        ["sweepstake_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_sweepstake_participants_user_id"),
        "sweepstake_participants",
        ["user_id"],
        unique=False,
    )
    op.create_table(
        "transactions",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("user_id", ID_TYPE, nullable=True),
        sa.Column("sweepstake_id", sa.String(length=40), nullable=True),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("amount", sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["sweepstake_id"],
            ["sweepstakes.id"],
            name=op.f("fk_transactions_sweepstake_id_sweepstakes"),
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name=op.f("fk_transactions_user_id_users"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_transactions")),
    )
    op.create_index(
        "ix_transactions_sweepstake_type", "transactions", ["sweepstake_id", "type"], unique=False
    )
    op.create_index("ix_transactions_user", "transactions", ["user_id"], unique=False)
    op.create_table(
        "audit_logs",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("actor_type", sa.String(length=20), nullable=False),
        sa.Column("actor_user_id", ID_TYPE, nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("subject_table", sa.String(length=50), nullable=False),
        sa.Column("subject_id", sa.String(length=64), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "actor_type IN ('system','user')", name=op.f("ck_audit_logs_actor_type_enum")
        ),
        sa.ForeignKeyConstraint(
            ["actor_user_id"],
            ["users.id"],
            name=op.f("fk_audit_logs_actor_user_id_users"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_audit_logs")),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"], unique=False)
    op.create_index(
        "ix_audit_logs_subject", "audit_logs", ["subject_table", "subject_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_audit_logs_subject", table_name="audit_logs")
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_transactions_user", table_name="transactions")
    op.drop_index("ix_transactions_sweepstake_type", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index(
        op.f("ix_sweepstake_participants_user_id"), table_name="sweepstake_participants"
    )
    op.drop_index(
        op.f("ix_sweepstake_participants_sweepstake_id"), table_name="sweepstake_participants"
    )
    op.drop_table("sweepstake_participants")
    op.drop_index("ix_sweepstakes_status_start_time", table_name="sweepstakes")
    op.drop_index("ix_sweepstakes_status_end_time", table_name="sweepstakes")
    op.drop_table("sweepstakes")
    op.drop_table("users")
