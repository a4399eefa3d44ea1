"""baseline points ledger schema

Revision ID: 4d1e7a0b2c93
Revises:
Create Date: 2026-10-17 09:12:40.118203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4d1e7a0b2c93'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(bind, table_name: str) -> bool:
    insp = sa.inspect(bind)
    return table_name in insp.get_table_names()


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()

    if not _table_exists(bind, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("utorid", sa.String(length=8), nullable=False),
            sa.Column("name", sa.String(length=50), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False, unique=True),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="regular"),
            sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("suspicious", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.func.now(), nullable=True),
            sa.Column("last_login", sa.TIMESTAMP(), nullable=True),
        )
        op.create_index("ix_users_utorid", "users", ["utorid"], unique=True)

    if not _table_exists(bind, "promotions"):
        op.create_table(
            "promotions",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.String(length=255), nullable=False),
            sa.Column("type", sa.String(length=20), nullable=False),
            sa.Column("start_time", sa.TIMESTAMP(), nullable=False),
            sa.Column("end_time", sa.TIMESTAMP(), nullable=False),
            sa.Column("min_spending", sa.Float(), nullable=True),
            sa.Column("rate", sa.Float(), nullable=True),
            sa.Column("points", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.func.now(), nullable=True),
        )

    if not _table_exists(bind, "events"):
        op.create_table(
            "events",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("name", sa.String(length=100), nullable=False, unique=True),
            sa.Column("description", sa.String(length=255), nullable=False),
            sa.Column("location", sa.String(length=255), nullable=False),
            sa.Column("start_time", sa.TIMESTAMP(), nullable=False),
            sa.Column("end_time", sa.TIMESTAMP(), nullable=False),
            sa.Column("capacity", sa.Integer(), nullable=True),
            sa.Column("num_guests", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("points_remain", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("points_awarded", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("published", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.func.now(), nullable=True),
        )

    if not _table_exists(bind, "transactions"):
        op.create_table(
            "transactions",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("utorid", sa.String(length=8), sa.ForeignKey("users.utorid"), nullable=False),
            sa.Column("type", sa.String(length=20), nullable=False),
            sa.Column("amount", sa.Integer(), nullable=False),
            sa.Column("spent", sa.Float(), nullable=True),
            sa.Column("redeemed", sa.Integer(), nullable=True),
            sa.Column("related_id", sa.Integer(), nullable=True),
            sa.Column("suspicious", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("remark", sa.String(length=255), nullable=False, server_default=""),
            sa.Column("created_by", sa.String(length=8), sa.ForeignKey("users.utorid"), nullable=False),
            sa.Column("processed_by", sa.String(length=8), sa.ForeignKey("users.utorid"), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.func.now(), nullable=True),
        )
        op.create_index("ix_transactions_utorid", "transactions", ["utorid"])

    if not _table_exists(bind, "reset_tokens"):
        op.create_table(
            "reset_tokens",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("token", sa.String(length=36), nullable=False),
            sa.Column("utorid", sa.String(length=8), sa.ForeignKey("users.utorid"), nullable=False),
            sa.Column("expires_at", sa.TIMESTAMP(), nullable=False),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.func.now(), nullable=True),
        )
        op.create_index("ix_reset_tokens_token", "reset_tokens", ["token"], unique=True)

    link_tables = {
        "user_promotions": (("user_id", "users.id"), ("promotion_id", "promotions.id")),
        "transaction_promotions": (("transaction_id", "transactions.id"), ("promotion_id", "promotions.id")),
        "event_organizers": (("event_id", "events.id"), ("user_id", "users.id")),
        "event_guests": (("event_id", "events.id"), ("user_id", "users.id")),
    }
    for table_name, columns in link_tables.items():
        if not _table_exists(bind, table_name):
            op.create_table(
                table_name,
                *[
                    sa.Column(col, sa.Integer(), sa.ForeignKey(target), primary_key=True)
                    for col, target in columns
                ],
            )


def downgrade() -> None:
    """Downgrade schema."""
    for table_name in (
        "event_guests",
        "event_organizers",
        "transaction_promotions",
        "user_promotions",
        "reset_tokens",
        "transactions",
        "events",
        "promotions",
        "users",
    ):
        op.drop_table(table_name)
