"""Initial stock ledger schema

Revision ID: 20261019_initial_ledger
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial_ledger"
down_revision = None
branch_labels = None
depends_on = None

QUANTITY = sa.Numeric(14, 3)
MONEY = sa.Numeric(14, 2)


def _timestamps(updated: bool = True):
    cols = [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
    ]
    if updated:
        cols.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False)
        )
    return cols


def _ledger_key_columns():
    return [
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
    ]


def _ledger_key_constraints():
    return [
        sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.ForeignKeyConstraint(["recorded_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    ]


def upgrade():
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(32), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("organizations", schema=None) as batch_op:
        batch_op.create_index("ix_organizations_code", ["code"], unique=True)
        batch_op.create_index("ix_organizations_is_active", ["is_active"], unique=False)

    op.create_table(
        "branches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("code", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "name", name="uq_branches_org_name"),
        sa.UniqueConstraint("org_id", "code", name="uq_branches_org_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("branches", schema=None) as batch_op:
        batch_op.create_index("ix_branches_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_branches_code", ["code"], unique=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(16), nullable=False, server_default="staff"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index("ix_users_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_users_branch_id", ["branch_id"], unique=False)

    op.create_table(
        "items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("unit", sa.String(32), nullable=False, server_default="unit"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("cost_price", MONEY, nullable=True),
        sa.Column("selling_price", MONEY, nullable=True),
        sa.Column("quantity", QUANTITY, nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("items", schema=None) as batch_op:
        batch_op.create_index("ix_items_organization_id", ["organization_id"], unique=False)
        batch_op.create_index("ix_items_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_items_org_branch_name", ["organization_id", "branch_id", "name"], unique=False)

    op.create_table(
        "opening_stock",
        *_ledger_key_columns(),
        sa.Column("quantity", QUANTITY, nullable=False, server_default=sa.text("0")),
        sa.Column("cost_price", MONEY, nullable=True),
        sa.Column("selling_price", MONEY, nullable=True),
        sa.Column("source", sa.String(16), nullable=False, server_default="AUTO"),
        sa.Column("recorded_by", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        *_ledger_key_constraints(),
        sa.UniqueConstraint("item_id", "date", "organization_id", "branch_id", name="uq_opening_stock_natural_key"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("opening_stock", schema=None) as batch_op:
        batch_op.create_index("ix_opening_stock_item_id", ["item_id"], unique=False)
        batch_op.create_index("ix_opening_stock_date", ["date"], unique=False)
        batch_op.create_index("ix_opening_stock_scope_date", ["organization_id", "branch_id", "date"], unique=False)

    op.create_table(
        "closing_stock",
        *_ledger_key_columns(),
        sa.Column("quantity", QUANTITY, nullable=False, server_default=sa.text("0")),
        sa.Column("source", sa.String(16), nullable=False, server_default="AUTO"),
        sa.Column("recorded_by", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        *_ledger_key_constraints(),
        sa.UniqueConstraint("item_id", "date", "organization_id", "branch_id", name="uq_closing_stock_natural_key"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("closing_stock", schema=None) as batch_op:
        batch_op.create_index("ix_closing_stock_item_id", ["item_id"], unique=False)
        batch_op.create_index("ix_closing_stock_date", ["date"], unique=False)
        batch_op.create_index("ix_closing_stock_scope_date", ["organization_id", "branch_id", "date"], unique=False)

    op.create_table(
        "restocking",
        *_ledger_key_columns(),
        sa.Column("quantity", QUANTITY, nullable=False),
        sa.Column("cost_price", MONEY, nullable=True),
        sa.Column("selling_price", MONEY, nullable=True),
        sa.Column("recorded_by", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(updated=False),
        *_ledger_key_constraints(),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "sales",
        *_ledger_key_columns(),
        sa.Column("quantity", QUANTITY, nullable=False),
        sa.Column("price_per_unit", MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column("total_price", MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column("payment_mode", sa.String(16), nullable=False, server_default="cash"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("recorded_by", sa.Integer(), nullable=True),
        *_timestamps(),
        *_ledger_key_constraints(),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "waste_spoilage",
        *_ledger_key_columns(),
        sa.Column("quantity", QUANTITY, nullable=False),
        sa.Column("reason", sa.String(64), nullable=True),
        sa.Column("recorded_by", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(updated=False),
        *_ledger_key_constraints(),
        sqlite_autoincrement=True,
    )

    for table in ("restocking", "sales", "waste_spoilage"):
        with op.batch_alter_table(table, schema=None) as batch_op:
            batch_op.create_index(f"ix_{table}_item_id", ["item_id"], unique=False)
            batch_op.create_index(f"ix_{table}_date", ["date"], unique=False)
            batch_op.create_index(
                f"ix_{table}_scope_item_date",
                ["organization_id", "branch_id", "item_id", "date"],
                unique=False,
            )


def downgrade():
    for table in ("waste_spoilage", "sales", "restocking", "closing_stock", "opening_stock", "items", "users", "branches", "organizations"):
        op.drop_table(table)
