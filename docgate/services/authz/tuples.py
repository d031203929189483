from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import casbin
from casbin.model import Model
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from docgate.core.config import Settings, get_settings
from docgate.core.errors import PolicyStoreError
from docgate.domain.scope import PTYPE_GROUPING, PolicyTuple, Scope, scope_value
from docgate.persistence.repos import tuples as tuples_repo


logger = logging.getLogger(__name__)

DEFAULT_MODEL_PATH = Path(__file__).with_name("rbac_model.conf")


def load_model_text(path: str | Path | None = None) -> str:
    # The request-matching grammar is configuration and loads without any tuple data.
    model_path = Path(path) if path else DEFAULT_MODEL_PATH
    try:
        return model_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PolicyStoreError(f"policy model not readable: {model_path}") from exc


def build_enforcer(model_text: str, tuples: list[PolicyTuple]) -> casbin.Enforcer:
    # Build a standalone enforcer; persistence stays with the relational store.
    model = Model()
    model.load_model_from_text(model_text)
    enforcer = casbin.Enforcer(model)
    grants: list[list[str]] = []
    groupings: list[list[str]] = []
    seen: set[PolicyTuple] = set()
    for policy in tuples:
        if policy in seen:
            continue
        seen.add(policy)
        if policy.ptype == PTYPE_GROUPING:
            groupings.append(policy.params())
        else:
            grants.append(policy.params())
    if grants:
        enforcer.add_policies(grants)
    if groupings:
        enforcer.add_grouping_policies(groupings)
    enforcer.build_role_links()
    return enforcer


class PolicyTupleStore:
    """Durable grant/grouping tuples with an in-memory enforcer rebuilt on load.

    Writes are staged in the caller's session. ``save`` commits that session and
    reloads, so persisting tuples is always the last step of a unit of work.
    """

    def __init__(self, model_text: str) -> None:
        self._model_text = model_text
        # Validate the grammar eagerly so a broken model fails at startup.
        build_enforcer(model_text, [])
        self._enforcer: casbin.Enforcer | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "PolicyTupleStore":
        settings = settings or get_settings()
        return cls(load_model_text(settings.policy_model_path))

    @property
    def loaded(self) -> bool:
        return self._enforcer is not None

    def _require_enforcer(self) -> casbin.Enforcer:
        enforcer = self._enforcer
        if enforcer is None:
            raise PolicyStoreError("policy tuples have not been loaded")
        return enforcer

    async def load(self, session: AsyncSession) -> int:
        # Rebuild from the backing table and swap atomically for concurrent readers.
        try:
            rows = await tuples_repo.list_rules(session)
        except SQLAlchemyError as exc:
            raise PolicyStoreError("failed to read policy tuples") from exc
        tuples = [tuples_repo.row_to_tuple(row) for row in rows]
        async with self._lock:
            try:
                self._enforcer = build_enforcer(self._model_text, tuples)
            except Exception as exc:
                raise PolicyStoreError("failed to build enforcer from stored tuples") from exc
        logger.debug("policy_tuples_loaded count=%s", len(tuples))
        return len(tuples)

    async def save(self, session: AsyncSession) -> None:
        # Commit staged catalog and tuple writes together, then refresh enforcement.
        await session.commit()
        try:
            await self.load(session)
        except PolicyStoreError:
            # The write is durable; the next request-time reload picks it up.
            logger.warning("policy_reload_after_save_failed", exc_info=True)

    async def add_grant(
        self,
        session: AsyncSession,
        subject: str,
        resource: str,
        action: str,
        category: str | Scope = Scope.NONE,
        type_: str | Scope = Scope.NONE,
    ) -> bool:
        policy = PolicyTuple.grant(subject, resource, action, category, type_)
        if await tuples_repo.find_rule(session, policy) is not None:
            return False
        await tuples_repo.insert_rule(session, policy)
        logger.info(
            "grant_tuple_added subject=%s resource=%s action=%s category=%s type=%s",
            subject,
            resource,
            action,
            policy.category,
            policy.type,
        )
        return True

    async def remove_grant(
        self,
        session: AsyncSession,
        subject: str,
        resource: str,
        action: str,
        category: str | Scope = Scope.NONE,
        type_: str | Scope = Scope.NONE,
    ) -> bool:
        policy = PolicyTuple.grant(subject, resource, action, category, type_)
        removed = await tuples_repo.delete_rule(session, policy)
        if removed:
            logger.info(
                "grant_tuple_removed subject=%s resource=%s action=%s category=%s type=%s",
                subject,
                resource,
                action,
                policy.category,
                policy.type,
            )
        return removed > 0

    async def add_grouping(self, session: AsyncSession, user: str, role: str) -> bool:
        policy = PolicyTuple.grouping(user, role)
        if await tuples_repo.find_rule(session, policy) is not None:
            return False
        await tuples_repo.insert_rule(session, policy)
        logger.info("grouping_tuple_added user=%s role=%s", user, role)
        return True

    async def remove_grouping(self, session: AsyncSession, user: str, role: str) -> bool:
        removed = await tuples_repo.delete_rule(session, PolicyTuple.grouping(user, role))
        if removed:
            logger.info("grouping_tuple_removed user=%s role=%s", user, role)
        return removed > 0

    async def has_tuple(self, session: AsyncSession, policy: PolicyTuple) -> bool:
        # Reads the backing table, so staged writes in this session are visible.
        return await tuples_repo.find_rule(session, policy) is not None

    async def rescope_category(
        self, session: AsyncSession, *, old_category: str, new_category: str
    ) -> int:
        renamed = await tuples_repo.rescope_category(
            session, old_category=old_category, new_category=new_category
        )
        logger.info(
            "grant_tuples_rescoped old_category=%s new_category=%s count=%s",
            old_category,
            new_category,
            renamed,
        )
        return renamed

    async def remove_scope(self, session: AsyncSession, *, category: str, type_: str | Scope) -> int:
        # Drop every grant tuple under an exact scope, including ones with no catalog row.
        removed = await tuples_repo.delete_grants_in_scope(
            session, category=category, type_=scope_value(type_)
        )
        if removed:
            logger.info(
                "grant_tuples_purged category=%s type=%s count=%s", category, scope_value(type_), removed
            )
        return removed

    async def grouping_subjects(self, session: AsyncSession, role: str) -> list[str]:
        return await tuples_repo.list_grouping_subjects(session, role)

    async def remove_role(self, session: AsyncSession, role: str) -> int:
        removed = await tuples_repo.delete_for_role(session, role)
        logger.info("role_tuples_removed role=%s count=%s", role, removed)
        return removed

    def roles_of(self, user: str) -> list[str]:
        # Direct role bindings from the loaded grouping tuples.
        enforcer = self._require_enforcer()
        try:
            return list(enforcer.get_roles_for_user(user))
        except Exception as exc:
            raise PolicyStoreError("failed to resolve roles") from exc

    def tuples_of(self, subject: str) -> list[PolicyTuple]:
        enforcer = self._require_enforcer()
        try:
            rows = enforcer.get_filtered_policy(0, subject)
        except Exception as exc:
            raise PolicyStoreError("failed to list tuples") from exc
        return [
            PolicyTuple.grant(row[0], row[1], row[2], row[3], row[4])
            for row in rows
        ]

    def enforce(
        self,
        subject: str,
        resource: str,
        action: str,
        category: str | Scope = Scope.NONE,
        type_: str | Scope = Scope.NONE,
    ) -> bool:
        # Exact match on every scope dimension; "none" is a value, not a wildcard.
        enforcer = self._require_enforcer()
        request = (
            subject,
            resource,
            action,
            scope_value(category),
            scope_value(type_),
            Scope.NONE.value,
        )
        try:
            return bool(enforcer.enforce(*request))
        except Exception as exc:
            raise PolicyStoreError("policy evaluation failed") from exc
