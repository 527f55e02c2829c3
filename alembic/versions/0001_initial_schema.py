"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2025-01-06 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
MONEY = sa.Numeric(12, 2)


def _status(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, length=20)


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "charities",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("payment_account_id", sa.String(255), nullable=True),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_charities"),
    )

    op.create_table(
        "subscribers",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("charity_id", ID, nullable=True),
        sa.Column("donation_percent", sa.Numeric(5, 2), nullable=False),
        _ts("created_at"),
        sa.ForeignKeyConstraint(
            ["charity_id"],
            ["charities.id"],
            name="fk_subscribers_charity_id_charities",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_subscribers"),
    )
    op.create_index("ix_subscribers_email", "subscribers", ["email"], unique=True)

    op.create_table(
        "draw_settings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("base_amount_per_subscriber", MONEY, nullable=False),
        sa.Column("tier1_percent", sa.Integer(), nullable=False),
        sa.Column("tier2_percent", sa.Integer(), nullable=False),
        sa.Column("tier3_percent", sa.Integer(), nullable=False),
        sa.Column("jackpot_cap", MONEY, nullable=False),
        sa.Column("score_range_min", sa.Integer(), nullable=False),
        sa.Column("score_range_max", sa.Integer(), nullable=False),
        _ts("updated_at"),
        sa.PrimaryKeyConstraint("id", name="pk_draw_settings"),
    )

    op.create_table(
        "draw_cycles",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("month_year", sa.String(32), nullable=False),
        sa.Column(
            "status", _status("draw_status", "open", "completed", "published"), nullable=False
        ),
        sa.Column("score_range_min", sa.Integer(), nullable=True),
        sa.Column("score_range_max", sa.Integer(), nullable=True),
        sa.Column("winning_numbers", sa.JSON(), nullable=True),
        sa.Column("participants_count", sa.Integer(), nullable=False),
        sa.Column("subscriber_count", sa.Integer(), nullable=False),
        sa.Column("prize_pool", MONEY, nullable=False),
        sa.Column("jackpot_carryover_in", MONEY, nullable=False),
        sa.Column("tier1_pool", MONEY, nullable=False),
        sa.Column("tier2_pool", MONEY, nullable=False),
        sa.Column("tier3_pool", MONEY, nullable=False),
        sa.Column("cap_excess", MONEY, nullable=False),
        sa.Column("jackpot_cap_reached", sa.Boolean(), nullable=False),
        sa.Column("jackpot_rollover", MONEY, nullable=False),
        sa.Column("tier1_winners", sa.Integer(), nullable=False),
        sa.Column("tier2_winners", sa.Integer(), nullable=False),
        sa.Column("tier3_winners", sa.Integer(), nullable=False),
        _ts("drawn_at", nullable=True),
        _ts("published_at", nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        sa.PrimaryKeyConstraint("id", name="pk_draw_cycles"),
        sa.UniqueConstraint("month_year", name="uq_draw_cycles_month_year"),
    )
    op.create_index("ix_draw_cycles_status", "draw_cycles", ["status"])

    op.create_table(
        "jackpot_tracker",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("last_draw_id", ID, nullable=True),
        _ts("updated_at"),
        sa.ForeignKeyConstraint(
            ["last_draw_id"],
            ["draw_cycles.id"],
            name="fk_jackpot_tracker_last_draw_id_draw_cycles",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_jackpot_tracker"),
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("subscriber_id", ID, nullable=False),
        sa.Column("plan", sa.String(20), nullable=False),
        sa.Column(
            "status",
            _status("subscription_status", "active", "expired", "cancelled"),
            nullable=False,
        ),
        sa.Column("assigned_draw_id", ID, nullable=True),
        sa.Column("draws_remaining", sa.Integer(), nullable=False),
        sa.Column("expired_by_draw_id", ID, nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.ForeignKeyConstraint(
            ["subscriber_id"],
            ["subscribers.id"],
            name="fk_subscriptions_subscriber_id_subscribers",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["assigned_draw_id"],
            ["draw_cycles.id"],
            name="fk_subscriptions_assigned_draw_id_draw_cycles",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["expired_by_draw_id"],
            ["draw_cycles.id"],
            name="fk_subscriptions_expired_by_draw_id_draw_cycles",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_subscriptions"),
    )
    op.create_index(
        "ix_subscriptions_subscriber_id", "subscriptions", ["subscriber_id"]
    )

    op.create_table(
        "scores",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("subscriber_id", ID, nullable=False),
        sa.Column("value", sa.Integer(), nullable=False),
        sa.Column("played_on", sa.Date(), nullable=False),
        _ts("created_at"),
        sa.ForeignKeyConstraint(
            ["subscriber_id"],
            ["subscribers.id"],
            name="fk_scores_subscriber_id_subscribers",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_scores"),
    )
    op.create_index("ix_scores_subscriber_id", "scores", ["subscriber_id"])

    op.create_table(
        "winner_entries",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("draw_id", ID, nullable=False),
        sa.Column("subscriber_id", ID, nullable=False),
        sa.Column("charity_id", ID, nullable=True),
        sa.Column("tier", sa.Integer(), nullable=False),
        sa.Column("match_count", sa.Integer(), nullable=False),
        sa.Column("scores", sa.JSON(), nullable=False),
        sa.Column("matched_numbers", sa.JSON(), nullable=False),
        sa.Column("gross_prize", MONEY, nullable=False),
        sa.Column("charity_amount", MONEY, nullable=False),
        sa.Column("net_payout", MONEY, nullable=False),
        sa.Column(
            "verification_status",
            _status("verification_status", "pending", "verified", "rejected"),
            nullable=False,
        ),
        sa.Column("verified_by", sa.String(64), nullable=True),
        _ts("verified_at", nullable=True),
        sa.Column(
            "payment_status", _status("payment_status", "unpaid", "paid"), nullable=False
        ),
        sa.Column("payment_reference", sa.String(255), nullable=True),
        sa.Column("paid_by", sa.String(64), nullable=True),
        _ts("paid_at", nullable=True),
        _ts("created_at"),
        sa.ForeignKeyConstraint(
            ["draw_id"],
            ["draw_cycles.id"],
            name="fk_winner_entries_draw_id_draw_cycles",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["subscriber_id"],
            ["subscribers.id"],
            name="fk_winner_entries_subscriber_id_subscribers",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["charity_id"],
            ["charities.id"],
            name="fk_winner_entries_charity_id_charities",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_winner_entries"),
        sa.UniqueConstraint("draw_id", "subscriber_id", name="uq_winner_entry_per_draw"),
    )
    op.create_index("ix_winner_entries_draw_id", "winner_entries", ["draw_id"])
    op.create_index(
        "ix_winner_entries_verification_status",
        "winner_entries",
        ["verification_status"],
    )

    op.create_table(
        "charity_payouts",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("charity_id", ID, nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("status", _status("payout_status", "pending", "paid"), nullable=False),
        sa.Column("payout_ref", sa.String(255), nullable=True),
        _ts("paid_at", nullable=True),
        sa.Column("admin_id", sa.String(64), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.ForeignKeyConstraint(
            ["charity_id"],
            ["charities.id"],
            name="fk_charity_payouts_charity_id_charities",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_charity_payouts"),
    )
    op.create_index("ix_charity_payouts_charity_id", "charity_payouts", ["charity_id"])

    op.create_table(
        "donations",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("charity_id", ID, nullable=False),
        sa.Column("subscriber_id", ID, nullable=True),
        sa.Column("draw_id", ID, nullable=True),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("source", sa.String(32), nullable=False),
        sa.Column("status", _status("donation_status", "pending", "paid"), nullable=False),
        sa.Column("charity_payout_id", ID, nullable=True),
        _ts("created_at"),
        sa.ForeignKeyConstraint(
            ["charity_id"],
            ["charities.id"],
            name="fk_donations_charity_id_charities",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["subscriber_id"],
            ["subscribers.id"],
            name="fk_donations_subscriber_id_subscribers",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["draw_id"],
            ["draw_cycles.id"],
            name="fk_donations_draw_id_draw_cycles",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["charity_payout_id"],
            ["charity_payouts.id"],
            name="fk_donations_charity_payout_id_charity_payouts",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_donations"),
    )
    op.create_index("ix_donations_charity_id", "donations", ["charity_id"])
    op.create_index("ix_donations_draw_id", "donations", ["draw_id"])
    op.create_index("ix_donations_charity_payout_id", "donations", ["charity_payout_id"])

    op.create_table(
        "activity_log",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("subject_table", sa.String(50), nullable=False),
        sa.Column("subject_id", sa.Integer(), nullable=True),
        sa.Column("actor_id", sa.String(64), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        _ts("occurred_at"),
        sa.PrimaryKeyConstraint("id", name="pk_activity_log"),
    )
    op.create_index("ix_activity_log_action", "activity_log", ["action"])


def downgrade() -> None:
    op.drop_index("ix_activity_log_action", table_name="activity_log")
    op.drop_table("activity_log")
    op.drop_index("ix_donations_charity_payout_id", table_name="donations")
    op.drop_index("ix_donations_draw_id", table_name="donations")
    op.drop_index("ix_donations_charity_id", table_name="donations")
    op.drop_table("donations")
    op.drop_index("ix_charity_payouts_charity_id", table_name="charity_payouts")
    op.drop_table("charity_payouts")
    op.drop_index("ix_winner_entries_verification_status", table_name="winner_entries")
    op.drop_index("ix_winner_entries_draw_id", table_name="winner_entries")
    op.drop_table("winner_entries")
    op.drop_index("ix_scores_subscriber_id", table_name="scores")
    op.drop_table("scores")
    op.drop_index("ix_subscriptions_subscriber_id", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_table("jackpot_tracker")
    op.drop_index("ix_draw_cycles_status", table_name="draw_cycles")
    op.drop_table("draw_cycles")
    op.drop_table("draw_settings")
    op.drop_index("ix_subscribers_email", table_name="subscribers")
    op.drop_table("subscribers")
    op.drop_table("charities")
