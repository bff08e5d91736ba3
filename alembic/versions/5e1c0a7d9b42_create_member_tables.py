"""Create member, discord, wynn and guild tables

Revision ID: 5e1c0a7d9b42
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "5e1c0a7d9b42"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "member",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("discord", sa.BigInteger(), nullable=True, unique=True),
        sa.Column("mcid", sa.String(36), nullable=True, unique=True),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "discord",
        sa.Column("id", sa.BigInteger(), autoincrement=False, primary_key=True),
        sa.Column("mid", sa.Integer(), nullable=True),
        sa.Column("message", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("message_week", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("image", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("reaction", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("voice", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("voice_week", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("activity", sa.BigInteger(), nullable=False, server_default="0"),
    )
    op.create_index("ix_discord_mid", "discord", ["mid"])

    op.create_table(
        "wynn",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("mid", sa.Integer(), nullable=True),
        sa.Column("ign", sa.String(32), nullable=False),
        sa.Column("guild", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("emerald", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("emerald_week", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("activity", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("activity_week", sa.BigInteger(), nullable=False, server_default="0"),
    )
    op.create_index("ix_wynn_mid", "wynn", ["mid"])
    op.create_index("ix_wynn_ign", "wynn", ["ign"])

    op.create_table(
        "guild",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("xp", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("xp_week", sa.BigInteger(), nullable=False, server_default="0"),
    )


def downgrade() -> None:
    op.drop_table("guild")
    op.drop_index("ix_wynn_ign", table_name="wynn")
    op.drop_index("ix_wynn_mid", table_name="wynn")
    op.drop_table("wynn")
    op.drop_index("ix_discord_mid", table_name="discord")
    op.drop_table("discord")
    op.drop_table("member")
