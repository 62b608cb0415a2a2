"""create tax jurisdiction, category, rate, history, usf and backup tables

Revision ID: b1c2d3e4f5a6
Revises: a0b1c2d3e4f5
Create Date: 2026-10-19 09:10:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "b1c2d3e4f5a6"
down_revision = "a0b1c2d3e4f5"
branch_labels = None
depends_on = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("(CURRENT_TIMESTAMP)"),
        nullable=True,
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("(CURRENT_TIMESTAMP)"),
        nullable=True,
    )


def _organization_fk() -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(
        ["organization_id"], ["organizations.id"], ondelete="RESTRICT"
    )


def upgrade() -> None:
    op.create_table(
        "tax_jurisdictions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("jurisdiction_type", sa.String(length=30), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("authority_name", sa.String(length=255), nullable=True),
        sa.Column("state_code", sa.String(length=2), nullable=True),
        sa.Column("county_name", sa.String(length=255), nullable=True),
        sa.Column("city_name", sa.String(length=255), nullable=True),
        sa.Column("zip_codes", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        _created_at(),
        _updated_at(),
        _organization_fk(),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in ("organization_id", "jurisdiction_type", "state_code"):
        op.create_index(
            op.f(f"ix_tax_jurisdictions_{column}"), "tax_jurisdictions", [column], unique=False
        )

    op.create_table(
        "tax_categories",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("service_types", sa.JSON(), nullable=True),
        sa.Column("is_taxable", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        _created_at(),
        _updated_at(),
        _organization_fk(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_tax_categories_organization_id"),
        "tax_categories",
        ["organization_id"],
        unique=False,
    )

    op.create_table(
        "tax_rates",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("tax_jurisdiction_id", sa.String(length=36), nullable=False),
        sa.Column("tax_category_id", sa.String(length=36), nullable=False),
        sa.Column("tax_type", sa.String(length=100), nullable=False),
        sa.Column("tax_name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("rate_type", sa.String(length=30), nullable=False),
        sa.Column("percentage_rate", sa.Numeric(precision=10, scale=6), nullable=True),
        sa.Column("fixed_amount", sa.Numeric(precision=12, scale=4), nullable=True),
        sa.Column("minimum_threshold", sa.Numeric(precision=12, scale=4), nullable=True),
        sa.Column("maximum_amount", sa.Numeric(precision=12, scale=4), nullable=True),
        sa.Column("calculation_method", sa.String(length=30), nullable=False),
        sa.Column("authority_name", sa.String(length=255), nullable=True),
        sa.Column("tax_code", sa.String(length=100), nullable=True),
        sa.Column("service_types", sa.JSON(), nullable=True),
        sa.Column("tiers", sa.JSON(), nullable=True),
        sa.Column("effective_date", sa.Date(), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        _created_at(),
        _updated_at(),
        _organization_fk(),
        sa.ForeignKeyConstraint(
            ["tax_jurisdiction_id"], ["tax_jurisdictions.id"], ondelete="RESTRICT"
        ),
        sa.ForeignKeyConstraint(["tax_category_id"], ["tax_categories.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in ("organization_id", "tax_jurisdiction_id", "tax_category_id", "tax_type"):
        op.create_index(op.f(f"ix_tax_rates_{column}"), "tax_rates", [column], unique=False)

    op.create_table(
        "tax_rate_history",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("tax_rate_id", sa.String(length=36), nullable=False),
        sa.Column("old_values", sa.JSON(), nullable=False),
        sa.Column("new_values", sa.JSON(), nullable=False),
        sa.Column("change_reason", sa.Text(), nullable=True),
        sa.Column("changed_by", sa.String(length=255), nullable=True),
        sa.Column("source", sa.String(length=50), nullable=False),
        sa.Column("batch_id", sa.String(length=64), nullable=True),
        _created_at(),
        _organization_fk(),
        sa.ForeignKeyConstraint(["tax_rate_id"], ["tax_rates.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in ("organization_id", "tax_rate_id", "batch_id"):
        op.create_index(
            op.f(f"ix_tax_rate_history_{column}"), "tax_rate_history", [column], unique=False
        )

    op.create_table(
        "usf_rates",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("rate", sa.Numeric(precision=8, scale=4), nullable=False),
        sa.Column("quarter_label", sa.String(length=10), nullable=True),
        sa.Column("effective_date", sa.Date(), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _created_at(),
        _organization_fk(),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in ("organization_id", "effective_date"):
        op.create_index(op.f(f"ix_usf_rates_{column}"), "usf_rates", [column], unique=False)

    op.create_table(
        "tax_rate_backups",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("batch_id", sa.String(length=64), nullable=False),
        sa.Column("rates", sa.JSON(), nullable=False),
        sa.Column("rates_count", sa.Integer(), nullable=False),
        _created_at(),
        _organization_fk(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_tax_rate_backups_batch_id"), "tax_rate_backups", ["batch_id"], unique=True
    )
    op.create_index(
        op.f("ix_tax_rate_backups_organization_id"),
        "tax_rate_backups",
        ["organization_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_tax_rate_backups_organization_id"), table_name="tax_rate_backups")
    op.drop_index(op.f("ix_tax_rate_backups_batch_id"), table_name="tax_rate_backups")
    op.drop_table("tax_rate_backups")
    for column in ("organization_id", "effective_date"):
        op.drop_index(op.f(f"ix_usf_rates_{column}"), table_name="usf_rates")
    op.drop_table("usf_rates")
    for column in ("organization_id", "tax_rate_id", "batch_id"):
        op.drop_index(op.f(f"ix_tax_rate_history_{column}"), table_name="tax_rate_history")
    op.drop_table("tax_rate_history")
    for column in ("organization_id", "tax_jurisdiction_id", "tax_category_id", "tax_type"):
        op.drop_index(op.f(f"ix_tax_rates_{column}"), table_name="tax_rates")
    op.drop_table("tax_rates")
    op.drop_index(op.f("ix_tax_categories_organization_id"), table_name="tax_categories")
    op.drop_table("tax_categories")
    for column in ("organization_id", "jurisdiction_type", "state_code"):
        op.drop_index(op.f(f"ix_tax_jurisdictions_{column}"), table_name="tax_jurisdictions")
    op.drop_table("tax_jurisdictions")
