"""Cash sessions, ledger transactions and supporting master data

Revision ID: 20261019_cash_ledger_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_cash_ledger_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]


def upgrade():
    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("tax_id", sa.String(length=32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tax_id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_companies_is_active", "companies", ["is_active"], unique=False)

    op.create_table(
        "branches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("address", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("company_id", "name", name="uq_branches_company_name"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_branches_company_id", "branches", ["company_id"], unique=False)

    op.create_table(
        "points_of_sale",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("device_id", sa.String(length=100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_points_of_sale_branch_id", "points_of_sale", ["branch_id"], unique=False)
    op.create_index("ix_points_of_sale_is_active", "points_of_sale", ["is_active"], unique=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_name", sa.String(length=64), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_users_user_name", "users", ["user_name"], unique=True)

    op.create_table(
        "taxes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("code", sa.String(length=20), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("rate", sa.Numeric(9, 4), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_taxes_company_id", "taxes", ["company_id"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("tax_ids", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "product_variants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(length=64), nullable=False),
        sa.Column("attribute_values", sa.JSON(), nullable=True),
        sa.Column("base_price", sa.Numeric(15, 2), nullable=True),
        sa.Column("unit_symbol", sa.String(length=16), nullable=True),
        sa.Column("unit_conversion_factor", sa.Numeric(15, 6), nullable=True),
        sa.Column("tax_ids", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sku"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_product_variants_product_id", "product_variants", ["product_id"], unique=False)

    op.create_table(
        "cash_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("point_of_sale_id", sa.Integer(), nullable=False),
        sa.Column("opened_by_id", sa.Integer(), nullable=False),
        sa.Column("closed_by_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("opening_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("expected_amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("closing_amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("difference", sa.Numeric(15, 2), nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("closing_details", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["point_of_sale_id"], ["points_of_sale.id"]),
        sa.ForeignKeyConstraint(["opened_by_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["closed_by_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_cash_sessions_point_of_sale_id", "cash_sessions", ["point_of_sale_id"], unique=False)
    op.create_index("ix_cash_sessions_opened_by_id", "cash_sessions", ["opened_by_id"], unique=False)
    op.create_index("ix_cash_sessions_status", "cash_sessions", ["status"], unique=False)
    op.create_index("ix_cash_sessions_opened_at", "cash_sessions", ["opened_at"], unique=False)
    # At most one OPEN session per point of sale
    op.create_index(
        "uq_cash_sessions_one_open_per_pos",
        "cash_sessions",
        ["point_of_sale_id"],
        unique=True,
        sqlite_where=sa.text("status = 'OPEN'"),
        postgresql_where=sa.text("status = 'OPEN'"),
    )

    op.create_table(
        "ledger_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_number", sa.String(length=64), nullable=False),
        sa.Column("transaction_type", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=24), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("branch_id", sa.Integer(), nullable=True),
        sa.Column("point_of_sale_id", sa.Integer(), nullable=True),
        sa.Column("cash_session_id", sa.Integer(), nullable=True),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("subtotal", sa.Numeric(15, 2), nullable=False),
        sa.Column("tax_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("discount_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("total", sa.Numeric(15, 2), nullable=False),
        sa.Column("payment_method", sa.String(length=24), nullable=True),
        sa.Column("bank_account_key", sa.String(length=64), nullable=True),
        sa.Column("amount_paid", sa.Numeric(15, 2), nullable=True),
        sa.Column("change_amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("related_transaction_id", sa.Integer(), nullable=True),
        sa.Column("external_reference", sa.String(length=128), nullable=True),
        sa.Column("storage_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.ForeignKeyConstraint(["point_of_sale_id"], ["points_of_sale.id"]),
        sa.ForeignKeyConstraint(["cash_session_id"], ["cash_sessions.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["related_transaction_id"], ["ledger_transactions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("transaction_type", "document_number", name="uq_ledger_tx_type_document"),
        sqlite_autoincrement=True,
    )
    for column in (
        "document_number", "transaction_type", "status", "company_id", "branch_id",
        "point_of_sale_id", "cash_session_id", "customer_id", "user_id",
        "payment_method", "related_transaction_id", "created_at",
    ):
        op.create_index(f"ix_ledger_transactions_{column}", "ledger_transactions", [column], unique=False)
    op.create_index("ix_ledger_tx_company_status", "ledger_transactions", ["company_id", "status"], unique=False)
    # At most one opening transaction per cash session
    op.create_index(
        "uq_ledger_tx_one_opening_per_session",
        "ledger_transactions",
        ["cash_session_id"],
        unique=True,
        sqlite_where=sa.text("transaction_type = 'CASH_SESSION_OPENING'"),
        postgresql_where=sa.text("transaction_type = 'CASH_SESSION_OPENING'"),
    )

    op.create_table(
        "transaction_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transaction_id", sa.Integer(), nullable=False),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("product_variant_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("product_name", sa.String(length=255), nullable=True),
        sa.Column("product_sku", sa.String(length=64), nullable=True),
        sa.Column("variant_name", sa.String(length=255), nullable=True),
        sa.Column("unit_of_measure", sa.String(length=16), nullable=True),
        sa.Column("quantity", sa.Numeric(15, 4), nullable=False),
        sa.Column("quantity_in_base", sa.Numeric(15, 4), nullable=True),
        sa.Column("unit_conversion_factor", sa.Numeric(15, 6), nullable=True),
        sa.Column("unit_cost", sa.Numeric(15, 2), nullable=True),
        sa.Column("unit_price", sa.Numeric(15, 2), nullable=True),
        sa.Column("discount_percentage", sa.Numeric(9, 4), nullable=False),
        sa.Column("discount_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("tax_id", sa.Integer(), nullable=True),
        sa.Column("tax_rate", sa.Numeric(9, 4), nullable=False),
        sa.Column("tax_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("subtotal", sa.Numeric(15, 2), nullable=False),
        sa.Column("total", sa.Numeric(15, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["transaction_id"], ["ledger_transactions.id"]),
        sa.ForeignKeyConstraint(["product_variant_id"], ["product_variants.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["tax_id"], ["taxes.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_transaction_lines_transaction_id", "transaction_lines", ["transaction_id"], unique=False)
    op.create_index("ix_transaction_lines_product_variant_id", "transaction_lines", ["product_variant_id"], unique=False)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(length=32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_type"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "ledger_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("point_of_sale_id", sa.Integer(), nullable=True),
        sa.Column("cash_session_id", sa.Integer(), nullable=True),
        sa.Column("ledger_transaction_id", sa.Integer(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["point_of_sale_id"], ["points_of_sale.id"]),
        sa.ForeignKeyConstraint(["cash_session_id"], ["cash_sessions.id"]),
        sa.ForeignKeyConstraint(["ledger_transaction_id"], ["ledger_transactions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_ledger_events_company_id", "ledger_events", ["company_id"], unique=False)
    op.create_index("ix_ledger_events_event_type", "ledger_events", ["event_type"], unique=False)
    op.create_index("ix_ledger_events_actor_user_id", "ledger_events", ["actor_user_id"], unique=False)
    op.create_index("ix_ledger_events_occurred_at", "ledger_events", ["occurred_at"], unique=False)
    op.create_index("ix_ledger_events_session_occurred", "ledger_events", ["cash_session_id", "occurred_at"], unique=False)


def downgrade():
    op.drop_table("ledger_events")
    op.drop_table("document_sequences")
    op.drop_table("transaction_lines")
    op.drop_index("uq_ledger_tx_one_opening_per_session", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")
    op.drop_index("uq_cash_sessions_one_open_per_pos", table_name="cash_sessions")
    op.drop_table("cash_sessions")
    op.drop_table("product_variants")
    op.drop_table("products")
    op.drop_table("taxes")
    op.drop_table("users")
    op.drop_table("points_of_sale")
    op.drop_table("branches")
    op.drop_table("companies")
