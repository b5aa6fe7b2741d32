"""auth users, categories and transactions

Revision ID: 202506260820
Revises:
Create Date: 2025-06-26 08:20:21.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202506260820"
down_revision = None
branch_labels = None
depends_on = None


transaction_type = sa.Enum("income", "expense", name="transaction_type")


def upgrade():
    op.create_table(
        "auth_users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password", sa.String(length=255), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("email", name="uq_auth_users_email"),
    )

    op.create_table(
        "category",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", transaction_type, nullable=False),
        sa.Column(
            "auth_user_id",
            sa.String(length=36),
            sa.ForeignKey("auth_users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_category_user_created", "category", ["auth_user_id", "created_at"]
    )

    op.create_table(
        "transaction",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("type", transaction_type, nullable=False),
        sa.Column(
            "category_id",
            sa.String(length=36),
            sa.ForeignKey("category.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "auth_user_id",
            sa.String(length=36),
            sa.ForeignKey("auth_users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_transaction_user_created", "transaction", ["auth_user_id", "created_at"]
    )
    op.create_index(
        "ix_transaction_user_category", "transaction", ["auth_user_id", "category_id"]
    )


def downgrade():
    op.drop_index("ix_transaction_user_category", table_name="transaction")
    op.drop_index("ix_transaction_user_created", table_name="transaction")
    op.drop_table("transaction")
    op.drop_index("ix_category_user_created", table_name="category")
    op.drop_table("category")
    op.drop_table("auth_users")
    transaction_type.drop(op.get_bind(), checkfirst=True)
