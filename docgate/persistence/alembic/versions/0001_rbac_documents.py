"""add rbac policy tables and document lifecycle tables

Revision ID: 0001_rbac_documents
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_rbac_documents"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Roles are identified by guard name in every policy tuple.
    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("uuid", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("guard_name", sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", "guard_name", name="uq_roles_name_guard"),
    )
    op.create_index("ix_roles_uuid", "roles", ["uuid"], unique=True)
    op.create_index("ix_roles_guard_name", "roles", ["guard_name"], unique=False)

    # Policy tuples read by the enforcer; unused trailing fields hold the 'none' sentinel.
    op.create_table(
        "casbin_rule",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("ptype", sa.String(length=100), nullable=False),
        sa.Column("v0", sa.String(length=255), nullable=False),
        sa.Column("v1", sa.String(length=255), nullable=False),
        sa.Column("v2", sa.String(length=255), server_default="none", nullable=False),
        sa.Column("v3", sa.String(length=255), server_default="none", nullable=False),
        sa.Column("v4", sa.String(length=255), server_default="none", nullable=False),
        sa.Column("v5", sa.String(length=255), server_default="none", nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_casbin_rule_ptype_v0", "casbin_rule", ["ptype", "v0"], unique=False)
    op.create_index("ix_casbin_rule_scope", "casbin_rule", ["ptype", "v3", "v4"], unique=False)

    # Catalog of grantable rules; a row without a matching tuple is inactive.
    op.create_table(
        "role_has_rule",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("uuid", sa.String(length=36), nullable=False),
        sa.Column("role_guard_name", sa.String(length=255), nullable=False),
        sa.Column("rule_policy", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("category", sa.String(length=255), server_default="none", nullable=False),
        sa.Column("type", sa.String(length=255), server_default="none", nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "role_guard_name",
            "rule_policy",
            "action",
            "category",
            "type",
            name="uq_role_has_rule_scope",
        ),
    )
    op.create_index("ix_role_has_rule_uuid", "role_has_rule", ["uuid"], unique=True)
    op.create_index("ix_role_has_rule_scope", "role_has_rule", ["category", "type"], unique=False)

    op.create_table(
        "category_document",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("uuid", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("prefix", sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("prefix"),
    )
    op.create_index("ix_category_document_uuid", "category_document", ["uuid"], unique=True)
    op.create_index("ix_category_document_deleted_at", "category_document", ["deleted_at"], unique=False)

    op.create_table(
        "document_type",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("uuid", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("prefix", sa.String(length=255), nullable=False),
        sa.Column("document_category_id", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["document_category_id"], ["category_document.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("prefix"),
    )
    op.create_index("ix_document_type_uuid", "document_type", ["uuid"], unique=True)
    op.create_index(
        "ix_document_type_document_category_id", "document_type", ["document_category_id"], unique=False
    )
    op.create_index("ix_document_type_deleted_at", "document_type", ["deleted_at"], unique=False)

    op.create_table(
        "status_document",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("uuid", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_status_document_uuid", "status_document", ["uuid"], unique=True)

    op.create_table(
        "document_control",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("uuid", sa.String(length=36), nullable=False),
        sa.Column("document_name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("document_number", sa.String(length=255), nullable=False),
        sa.Column("clause_number", sa.String(length=255), nullable=True),
        sa.Column("revision_number", sa.Integer(), nullable=False),
        sa.Column("publish_date", sa.Date(), nullable=False),
        sa.Column("page_count", sa.Integer(), nullable=False),
        sa.Column("document_type_id", sa.Integer(), nullable=False),
        sa.Column("document_category_id", sa.Integer(), nullable=False),
        sa.Column("status_document_id", sa.Integer(), nullable=False),
        sa.Column("sequence_number", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["document_type_id"], ["document_type.id"]),
        sa.ForeignKeyConstraint(["document_category_id"], ["category_document.id"]),
        sa.ForeignKeyConstraint(["status_document_id"], ["status_document.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_document_control_uuid", "document_control", ["uuid"], unique=True)
    op.create_index(
        "ix_document_control_document_type_id", "document_control", ["document_type_id"], unique=False
    )
    op.create_index(
        "ix_document_control_document_category_id",
        "document_control",
        ["document_category_id"],
        unique=False,
    )
    op.create_index("ix_document_control_created_by", "document_control", ["created_by"], unique=False)
    op.create_index("ix_document_control_deleted_at", "document_control", ["deleted_at"], unique=False)

    # Append-only version history keyed by (document, version number).
    op.create_table(
        "document_version",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("uuid", sa.String(length=36), nullable=False),
        sa.Column("file", sa.String(length=1024), nullable=False),
        sa.Column("object_key", sa.String(length=1024), nullable=False),
        sa.Column("document_control_id", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("status_document_id", sa.Integer(), nullable=True),
        sa.Column("note", sa.Text(), nullable=False),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["document_control_id"], ["document_control.id"]),
        sa.ForeignKeyConstraint(["status_document_id"], ["status_document.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_control_id", "version", name="uq_document_version_number"),
    )
    op.create_index("ix_document_version_uuid", "document_version", ["uuid"], unique=True)
    op.create_index(
        "ix_document_version_document_control_id",
        "document_version",
        ["document_control_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_document_version_document_control_id", table_name="document_version")
    op.drop_index("ix_document_version_uuid", table_name="document_version")
    op.drop_table("document_version")
    op.drop_index("ix_document_control_deleted_at", table_name="document_control")
    op.drop_index("ix_document_control_created_by", table_name="document_control")
    op.drop_index("ix_document_control_document_category_id", table_name="document_control")
    op.drop_index("ix_document_control_document_type_id", table_name="document_control")
    op.drop_index("ix_document_control_uuid", table_name="document_control")
    op.drop_table("document_control")
    op.drop_index("ix_status_document_uuid", table_name="status_document")
    op.drop_table("status_document")
    op.drop_index("ix_document_type_deleted_at", table_name="document_type")
    op.drop_index("ix_document_type_document_category_id", table_name="document_type")
    op.drop_index("ix_document_type_uuid", table_name="document_type")
    op.drop_table("document_type")
    op.drop_index("ix_category_document_deleted_at", table_name="category_document")
    op.drop_index("ix_category_document_uuid", table_name="category_document")
    op.drop_table("category_document")
    op.drop_index("ix_role_has_rule_scope", table_name="role_has_rule")
    op.drop_index("ix_role_has_rule_uuid", table_name="role_has_rule")
    op.drop_table("role_has_rule")
    op.drop_index("ix_casbin_rule_scope", table_name="casbin_rule")
    op.drop_index("ix_casbin_rule_ptype_v0", table_name="casbin_rule")
    op.drop_table("casbin_rule")
    op.drop_index("ix_roles_guard_name", table_name="roles")
    op.drop_index("ix_roles_uuid", table_name="roles")
    op.drop_table("roles")
