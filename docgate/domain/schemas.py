from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from docgate.core.config import SCOPE_NONE
from docgate.core.errors import InputValidationError
from docgate.domain.scope import TAXONOMY_RULE_POLICY


def _normalize_actions(raw: Any) -> set[str]:
    # Accept a single name, a list of names, or the legacy {name: bool} toggle map.
    if raw is None:
        return set()
    if isinstance(raw, str):
        return {raw.strip()} if raw.strip() else set()
    if isinstance(raw, dict):
        return {str(name).strip() for name, enabled in raw.items() if enabled is True and str(name).strip()}
    if isinstance(raw, (list, tuple, set, frozenset)):
        return {str(name).strip() for name in raw if str(name).strip()}
    raise ValueError("actions must be a string, a list of names or a {name: bool} map")


class RuleEntry(BaseModel):
    # Tagged rule payload: a resource policy and the set of actions to grant on it.
    policy: str = Field(min_length=1)
    actions: set[str] = Field(default_factory=set)

    model_config = {"extra": "forbid"}

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_shape(cls, data: Any) -> Any:
        if isinstance(data, dict) and ("rule_policy" in data or "action" in data):
            data = dict(data)
            if "rule_policy" in data:
                data.setdefault("policy", data.pop("rule_policy"))
            if "action" in data:
                data.setdefault("actions", data.pop("action"))
        return data

    @field_validator("actions", mode="before")
    @classmethod
    def _coerce_actions(cls, value: Any) -> set[str]:
        return _normalize_actions(value)


class PermissionToggle(BaseModel):
    # Bulk activation entry: every action carries an explicit allowed flag.
    policy: str = Field(min_length=1)
    actions: dict[str, bool] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_shape(cls, data: Any) -> Any:
        if isinstance(data, dict) and ("rule_policy" in data or "action" in data):
            data = dict(data)
            if "rule_policy" in data:
                data.setdefault("policy", data.pop("rule_policy"))
            if "action" in data:
                data.setdefault("actions", data.pop("action"))
        return data


class ScopedRuleEntry(BaseModel):
    # Rule carried by a taxonomy payload; the scope comes from the owning entity.
    role_guard_name: str = Field(min_length=1)
    rule_policy: str = TAXONOMY_RULE_POLICY
    actions: set[str] = Field(default_factory=set)

    model_config = {"extra": "forbid"}

    @model_validator(mode="before")
    @classmethod
    def _accept_single_action(cls, data: Any) -> Any:
        if isinstance(data, dict) and "action" in data:
            data = dict(data)
            data.setdefault("actions", data.pop("action"))
        return data

    @field_validator("actions", mode="before")
    @classmethod
    def _coerce_actions(cls, value: Any) -> set[str]:
        return _normalize_actions(value)


@dataclass(frozen=True)
class DesiredRule:
    # One flattened (role, policy, action) triple under a taxonomy scope.
    role_guard_name: str
    rule_policy: str
    action: str


def flatten_scoped_rules(entries: list[ScopedRuleEntry]) -> list[DesiredRule]:
    # Expand entries into unique triples while keeping payload order stable.
    seen: set[DesiredRule] = set()
    flattened: list[DesiredRule] = []
    for entry in entries:
        for action in sorted(entry.actions):
            rule = DesiredRule(entry.role_guard_name, entry.rule_policy, action)
            if rule in seen:
                continue
            seen.add(rule)
            flattened.append(rule)
    return flattened


def _reject_sentinel_prefix(value: str) -> str:
    prefix = value.strip()
    if not prefix:
        raise ValueError("prefix must not be empty")
    if prefix.lower() == SCOPE_NONE:
        raise ValueError(f"prefix '{SCOPE_NONE}' is reserved for unscoped rules")
    return prefix


class CategoryPayload(BaseModel):
    name: str = Field(min_length=1)
    prefix: str = Field(min_length=1)
    role_has_rules: list[ScopedRuleEntry] = Field(default_factory=list)

    model_config = {"extra": "forbid"}

    @field_validator("prefix")
    @classmethod
    def _check_prefix(cls, value: str) -> str:
        return _reject_sentinel_prefix(value)


class DocumentTypePayload(BaseModel):
    name: str = Field(min_length=1)
    prefix: str = Field(min_length=1)
    document_category_id: int
    role_has_rules: list[ScopedRuleEntry] = Field(default_factory=list)

    model_config = {"extra": "forbid"}

    @field_validator("prefix")
    @classmethod
    def _check_prefix(cls, value: str) -> str:
        return _reject_sentinel_prefix(value)


class DocumentControlPayload(BaseModel):
    document_name: str = Field(min_length=1)
    description: str = ""
    document_number: str = Field(min_length=1)
    clause_number: str | None = None
    revision_number: int = Field(default=0, ge=0)
    # Kept as text so the lifecycle service owns date validation.
    publish_date: str
    page_count: int = Field(default=0, ge=0)
    document_type_id: int
    document_category_id: int
    sequence_number: int | None = None
    status_document_id: int | None = None

    model_config = {"extra": "forbid"}


class StatusDocumentPayload(BaseModel):
    name: str = Field(min_length=1)

    model_config = {"extra": "forbid"}


def parse_uuid(value: str, *, field: str = "uuid") -> str:
    # Reject malformed identifiers before any query is issued.
    try:
        return str(UUID(str(value)))
    except (TypeError, ValueError) as exc:
        raise InputValidationError(f"invalid {field}: {value!r}") from exc


def parse_publish_date(value: str | date | None) -> date:
    # Dates arrive as YYYY-MM-DD; a missing or unparsable value is a validation error.
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None or not str(value).strip():
        raise InputValidationError("publish_date is required")
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as exc:
        raise InputValidationError(f"invalid publish_date: {value!r}, expected YYYY-MM-DD") from exc
