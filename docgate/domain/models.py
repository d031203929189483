from __future__ import annotations

from datetime import date, datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from docgate.core.config import SCOPE_NONE


def _new_uuid() -> str:
    return str(uuid4())


def _utc_now() -> datetime:
    # Populate timestamps client-side so async sessions never lazy-load them after flush.
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Role(Base):
    __tablename__ = "roles"
    __table_args__ = (
        UniqueConstraint("name", "guard_name", name="uq_roles_name_guard"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), default=_new_uuid, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    # Guard name is the subject written into grant tuples and grouping tuples.
    guard_name: Mapped[str] = mapped_column(String(255), index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, server_default=func.now()
    )


class RoleHasRule(Base):
    __tablename__ = "role_has_rule"
    __table_args__ = (
        UniqueConstraint(
            "role_guard_name",
            "rule_policy",
            "action",
            "category",
            "type",
            name="uq_role_has_rule_scope",
        ),
        Index("ix_role_has_rule_scope", "category", "type"),
    )

    # Human-manageable mirror of a grant tuple; may exist without a live tuple (inactive).
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), default=_new_uuid, unique=True, index=True)
    role_guard_name: Mapped[str] = mapped_column(String(255))
    rule_policy: Mapped[str] = mapped_column(String(255))
    action: Mapped[str] = mapped_column(String(255))
    # Unscoped rows carry the same sentinel as tuples so the unique key never sees NULLs.
    category: Mapped[str] = mapped_column(String(255), default=SCOPE_NONE, server_default=SCOPE_NONE)
    type_: Mapped[str] = mapped_column(
        "type", String(255), default=SCOPE_NONE, server_default=SCOPE_NONE
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, server_default=func.now()
    )


class CasbinRule(Base):
    __tablename__ = "casbin_rule"
    __table_args__ = (
        Index("ix_casbin_rule_ptype_v0", "ptype", "v0"),
        Index("ix_casbin_rule_scope", "ptype", "v3", "v4"),
    )

    # p rows: v0=role, v1=resource, v2=action, v3=category, v4=type, v5=extra.
    # g rows: v0=user, v1=role.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ptype: Mapped[str] = mapped_column(String(100))
    v0: Mapped[str] = mapped_column(String(255))
    v1: Mapped[str] = mapped_column(String(255))
    v2: Mapped[str] = mapped_column(String(255), default=SCOPE_NONE, server_default=SCOPE_NONE)
    v3: Mapped[str] = mapped_column(String(255), default=SCOPE_NONE, server_default=SCOPE_NONE)
    v4: Mapped[str] = mapped_column(String(255), default=SCOPE_NONE, server_default=SCOPE_NONE)
    v5: Mapped[str] = mapped_column(String(255), default=SCOPE_NONE, server_default=SCOPE_NONE)


class CategoryDocument(Base):
    __tablename__ = "category_document"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), default=_new_uuid, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    # Unique across soft-deleted rows too so a reused prefix never inherits stale rules.
    prefix: Mapped[str] = mapped_column(String(255), unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, server_default=func.now()
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)


class DocumentType(Base):
    __tablename__ = "document_type"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), default=_new_uuid, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    prefix: Mapped[str] = mapped_column(String(255), unique=True)
    document_category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("category_document.id"), index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, server_default=func.now()
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)


class StatusDocument(Base):
    __tablename__ = "status_document"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), default=_new_uuid, unique=True, index=True)
    # Lower-cased name doubles as the action checked when reading a document in this status.
    name: Mapped[str] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, server_default=func.now()
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class DocumentControl(Base):
    __tablename__ = "document_control"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), default=_new_uuid, unique=True, index=True)
    document_name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text, default="")
    document_number: Mapped[str] = mapped_column(String(255))
    clause_number: Mapped[str | None] = mapped_column(String(255), nullable=True)
    revision_number: Mapped[int] = mapped_column(Integer, default=0)
    publish_date: Mapped[date] = mapped_column(Date)
    page_count: Mapped[int] = mapped_column(Integer, default=0)
    document_type_id: Mapped[int] = mapped_column(Integer, ForeignKey("document_type.id"), index=True)
    document_category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("category_document.id"), index=True
    )
    status_document_id: Mapped[int] = mapped_column(Integer, ForeignKey("status_document.id"))
    sequence_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Subject identifier of the creator; owners bypass the read gate.
    created_by: Mapped[str] = mapped_column(String(255), index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, server_default=func.now()
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)


class DocumentVersion(Base):
    __tablename__ = "document_version"
    __table_args__ = (
        UniqueConstraint("document_control_id", "version", name="uq_document_version_number"),
    )

    # Append-only revision history; rows are never rewritten once created.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), default=_new_uuid, unique=True, index=True)
    # Public URL of the stored object.
    file: Mapped[str] = mapped_column(String(1024))
    # Bucket key used for removal; the URL is not a key.
    object_key: Mapped[str] = mapped_column(String(1024))
    document_control_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("document_control.id"), index=True
    )
    version: Mapped[int] = mapped_column(Integer)
    status_document_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("status_document.id"), nullable=True
    )
    note: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, server_default=func.now()
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
