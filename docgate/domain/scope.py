from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from docgate.core.config import SCOPE_NONE


class Scope(str, Enum):
    # Explicit "unscoped" marker; compares equal to the stored sentinel string.
    NONE = SCOPE_NONE


PTYPE_GRANT = "p"
PTYPE_GROUPING = "g"

# Resource names checked by the HTTP seam before each mutation.
RESOURCE_ROLES = "roles"
RESOURCE_RULES = "rules"
RESOURCE_CATEGORY = "category-document"
RESOURCE_TYPE = "document-type"
RESOURCE_STATUS = "status-document"
RESOURCE_DOCUMENT = "document"

MANAGED_RESOURCES = (
    RESOURCE_ROLES,
    RESOURCE_RULES,
    RESOURCE_CATEGORY,
    RESOURCE_TYPE,
    RESOURCE_STATUS,
    RESOURCE_DOCUMENT,
)
CRUD_ACTIONS = ("read", "create", "update", "delete")

# Catalog rows created alongside taxonomy entities always target documents.
TAXONOMY_RULE_POLICY = RESOURCE_DOCUMENT


def scope_value(value: str | Scope | None) -> str:
    # Normalize an optional scope dimension into the stored string form.
    if value is None:
        return Scope.NONE.value
    if isinstance(value, Scope):
        return value.value
    text = str(value).strip()
    return text or Scope.NONE.value


@dataclass(frozen=True)
class PolicyTuple:
    # Grant shape (p): subject=role, resource, action, category, type, extra.
    # Grouping shape (g): subject=user, resource=role; remaining positions stay unscoped.
    ptype: str
    subject: str
    resource: str
    action: str = SCOPE_NONE
    category: str = SCOPE_NONE
    type: str = SCOPE_NONE
    extra: str = SCOPE_NONE

    @classmethod
    def grant(
        cls,
        subject: str,
        resource: str,
        action: str,
        category: str | Scope | None = None,
        type_: str | Scope | None = None,
    ) -> "PolicyTuple":
        return cls(
            ptype=PTYPE_GRANT,
            subject=subject,
            resource=resource,
            action=action,
            category=scope_value(category),
            type=scope_value(type_),
        )

    @classmethod
    def grouping(cls, user: str, role: str) -> "PolicyTuple":
        return cls(ptype=PTYPE_GROUPING, subject=user, resource=role)

    def params(self) -> list[str]:
        # Positional values as the enforcer stores them for this tuple kind.
        if self.ptype == PTYPE_GROUPING:
            return [self.subject, self.resource]
        return [self.subject, self.resource, self.action, self.category, self.type, self.extra]

    def as_dict(self) -> dict[str, str]:
        if self.ptype == PTYPE_GROUPING:
            return {"user": self.subject, "role": self.resource}
        return {
            "subject": self.subject,
            "resource": self.resource,
            "action": self.action,
            "category": self.category,
            "type": self.type,
        }
