"""enrollment submission tables

Revision ID: 20261019_enrollment_core
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261019_enrollment_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "insurance_companies",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_insurance_companies_slug", "insurance_companies", ["slug"], unique=True)

    op.create_table(
        "applications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("company_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="draft"),
        sa.Column("effective_date", sa.Date(), nullable=True),
        sa.Column(
            "enrollment_data",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("api_response", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("api_error", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("submission_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("carrier_submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["company_id"], ["insurance_companies.id"], ondelete="SET NULL"),
        sa.CheckConstraint(
            "status IN ('draft', 'submitted', 'pending_approval', 'approved', 'active', "
            "'rejected', 'cancelled', 'submission_failed', 'submitting')",
            name="ck_applications_status",
        ),
    )
    op.create_index("ix_applications_user_id", "applications", ["user_id"])
    op.create_index("ix_applications_company_id", "applications", ["company_id"])
    op.create_index("ix_applications_status", "applications", ["status"])

    op.create_table(
        "coverages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("plan_key", sa.String(length=100), nullable=False),
        sa.Column("carrier_name", sa.String(length=255), nullable=True),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("monthly_premium", sa.Numeric(12, 2), nullable=True),
        sa.Column("effective_date", sa.Date(), nullable=True),
        sa.Column("payment_frequency", sa.String(length=30), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="CASCADE"),
        sa.CheckConstraint("monthly_premium >= 0", name="ck_coverages_premium_nonneg"),
    )
    op.create_index("ix_coverages_application_id", "coverages", ["application_id"])

    op.create_table(
        "user_payment_methods",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("payment_method", sa.String(length=30), nullable=False),
        sa.Column("card_holder_name", sa.String(length=255), nullable=True),
        sa.Column("card_brand", sa.String(length=50), nullable=True),
        sa.Column("card_last_four", sa.String(length=4), nullable=True),
        sa.Column("card_expiry_month", sa.String(length=2), nullable=True),
        sa.Column("card_expiry_year", sa.String(length=4), nullable=True),
        sa.Column("account_holder_name", sa.String(length=255), nullable=True),
        sa.Column("account_type", sa.String(length=30), nullable=True),
        sa.Column("account_last_four", sa.String(length=4), nullable=True),
        sa.Column("bank_name", sa.String(length=255), nullable=True),
        sa.Column("vault_secret_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_user_payment_methods_user_id", "user_payment_methods", ["user_id"])

    op.create_table(
        "application_payment_info",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("is_current", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("payment_method", sa.String(length=30), nullable=False),
        sa.Column("user_payment_method_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("card_number_encrypted", sa.Text(), nullable=True),
        sa.Column("cvv_encrypted", sa.Text(), nullable=True),
        sa.Column("card_holder_name", sa.String(length=255), nullable=True),
        sa.Column("card_brand", sa.String(length=50), nullable=True),
        sa.Column("card_last_four", sa.String(length=4), nullable=True),
        sa.Column("card_expiry_month", sa.String(length=2), nullable=True),
        sa.Column("card_expiry_year", sa.String(length=4), nullable=True),
        sa.Column("account_number_encrypted", sa.Text(), nullable=True),
        sa.Column("routing_number_encrypted", sa.Text(), nullable=True),
        sa.Column("account_holder_name", sa.String(length=255), nullable=True),
        sa.Column("account_type", sa.String(length=30), nullable=True),
        sa.Column("bank_name", sa.String(length=255), nullable=True),
        sa.Column("desired_draft_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["user_payment_method_id"], ["user_payment_methods.id"], ondelete="SET NULL"
        ),
        sa.CheckConstraint(
            "payment_method IN ('credit_card', 'debit_card', 'ach')",
            name="ck_app_payment_info_method",
        ),
    )
    op.create_index(
        "ix_application_payment_info_application_id", "application_payment_info", ["application_id"]
    )
    op.create_index(
        "uq_app_payment_info_current",
        "application_payment_info",
        ["application_id"],
        unique=True,
        postgresql_where=sa.text("is_current"),
    )

    op.create_table(
        "application_submission_results",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("carrier_slug", sa.String(length=100), nullable=True),
        sa.Column("plan_key", sa.String(length=100), nullable=True),
        sa.Column("submission_received", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("policy_no", sa.String(length=100), nullable=True),
        sa.Column("total_rate", sa.Numeric(12, 2), nullable=True),
        sa.Column("effective_date", sa.Date(), nullable=True),
        sa.Column(
            "submission_errors",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_application_submission_results_application_id",
        "application_submission_results",
        ["application_id"],
    )

    op.create_table(
        "admin_activity_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.String(length=255), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("old_values", sa.JSON(), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_admin_activity_logs_user_id", "admin_activity_logs", ["user_id"])
    op.create_index("ix_admin_activity_logs_entity_id", "admin_activity_logs", ["entity_id"])

    # Append-only: rows can never be updated. Deletes are left to the ON DELETE
    # CASCADE from applications.
    op.execute(
        """
        CREATE OR REPLACE FUNCTION forbid_submission_result_mutation() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'application_submission_results is append-only';
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_submission_results_append_only
        BEFORE UPDATE ON application_submission_results
        FOR EACH ROW EXECUTE FUNCTION forbid_submission_result_mutation();
        """
    )


def downgrade() -> None:
    op.execute(
        "DROP TRIGGER IF EXISTS trg_submission_results_append_only ON application_submission_results"
    )
    op.execute("DROP FUNCTION IF EXISTS forbid_submission_result_mutation()")
    op.drop_index("ix_admin_activity_logs_entity_id", table_name="admin_activity_logs")
    op.drop_index("ix_admin_activity_logs_user_id", table_name="admin_activity_logs")
    op.drop_table("admin_activity_logs")
    op.drop_index(
        "ix_application_submission_results_application_id",
        table_name="application_submission_results",
    )
    op.drop_table("application_submission_results")
    op.drop_index("uq_app_payment_info_current", table_name="application_payment_info")
    op.drop_index(
        "ix_application_payment_info_application_id", table_name="application_payment_info"
    )
    op.drop_table("application_payment_info")
    op.drop_index("ix_user_payment_methods_user_id", table_name="user_payment_methods")
    op.drop_table("user_payment_methods")
    op.drop_index("ix_coverages_application_id", table_name="coverages")
    op.drop_table("coverages")
    op.drop_index("ix_applications_status", table_name="applications")
    op.drop_index("ix_applications_company_id", table_name="applications")
    op.drop_index("ix_applications_user_id", table_name="applications")
    op.drop_table("applications")
    op.drop_index("ix_insurance_companies_slug", table_name="insurance_companies")
    op.drop_table("insurance_companies")
