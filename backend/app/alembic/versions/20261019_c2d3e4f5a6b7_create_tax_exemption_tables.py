"""create tax_exemptions and tax_exemption_usages tables

Revision ID: c2d3e4f5a6b7
Revises: b1c2d3e4f5a6
Create Date: 2026-10-19 09:20:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "c2d3e4f5a6b7"
down_revision = "b1c2d3e4f5a6"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tax_exemptions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("customer_id", sa.String(length=36), nullable=False),
        sa.Column("tax_jurisdiction_id", sa.String(length=36), nullable=True),
        sa.Column("exemption_type", sa.String(length=50), nullable=False),
        sa.Column("exemption_name", sa.String(length=255), nullable=False),
        sa.Column("certificate_number", sa.String(length=255), nullable=True),
        sa.Column("issuing_authority", sa.String(length=255), nullable=True),
        sa.Column("issue_date", sa.Date(), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("is_blanket_exemption", sa.Boolean(), nullable=False),
        sa.Column("applicable_tax_types", sa.JSON(), nullable=True),
        sa.Column("exemption_conditions", sa.JSON(), nullable=True),
        sa.Column("exemption_percentage", sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column("maximum_exemption_amount", sa.Numeric(precision=12, scale=4), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(
            ["tax_jurisdiction_id"], ["tax_jurisdictions.id"], ondelete="RESTRICT"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in ("organization_id", "customer_id", "tax_jurisdiction_id"):
        op.create_index(
            op.f(f"ix_tax_exemptions_{column}"), "tax_exemptions", [column], unique=False
        )

    op.create_table(
        "tax_exemption_usages",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("tax_exemption_id", sa.String(length=36), nullable=False),
        sa.Column("customer_id", sa.String(length=36), nullable=True),
        sa.Column("document_type", sa.String(length=20), nullable=False),
        sa.Column("document_id", sa.String(length=36), nullable=False),
        sa.Column("line_reference", sa.String(length=100), nullable=False),
        sa.Column("tax_type", sa.String(length=100), nullable=False),
        sa.Column("original_tax_amount", sa.Numeric(precision=12, scale=4), nullable=False),
        sa.Column("exempted_amount", sa.Numeric(precision=12, scale=4), nullable=False),
        sa.Column("final_tax_amount", sa.Numeric(precision=12, scale=4), nullable=False),
        sa.Column("exemption_reason", sa.String(length=255), nullable=True),
        sa.Column(
            "used_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["tax_exemption_id"], ["tax_exemptions.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "tax_exemption_id",
            "document_type",
            "document_id",
            "line_reference",
            "tax_type",
            name="uq_tax_exemption_usages_line",
        ),
    )
    for column in ("organization_id", "tax_exemption_id", "customer_id", "document_id"):
        op.create_index(
            op.f(f"ix_tax_exemption_usages_{column}"),
            "tax_exemption_usages",
            [column],
            unique=False,
        )


def downgrade() -> None:
    for column in ("organization_id", "tax_exemption_id", "customer_id", "document_id"):
        op.drop_index(
            op.f(f"ix_tax_exemption_usages_{column}"), table_name="tax_exemption_usages"
        )
    op.drop_table("tax_exemption_usages")
    for column in ("organization_id", "customer_id", "tax_jurisdiction_id"):
        op.drop_index(op.f(f"ix_tax_exemptions_{column}"), table_name="tax_exemptions")
    op.drop_table("tax_exemptions")
