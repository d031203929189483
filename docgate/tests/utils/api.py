from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from docgate.domain.schemas import PermissionToggle
from docgate.domain.scope import CRUD_ACTIONS, MANAGED_RESOURCES
from docgate.services.authz.tuples import PolicyTupleStore
from docgate.services.catalog import ADMIN_ROLE_GUARD_NAME, PolicyCatalog
from docgate.services.roles import RoleRegistry


ADMIN_SUBJECT = "root-admin"


def subject_headers(subject: str) -> dict[str, str]:
    return {"X-Subject": subject}


async def seed_admin(session: AsyncSession, store: PolicyTupleStore, *, subject: str = ADMIN_SUBJECT) -> None:
    # Unscoped CRUD on every managed resource, bound to one subject.
    await RoleRegistry(store).create_role(session, name="Administrator", guard_name=ADMIN_ROLE_GUARD_NAME)
    await PolicyCatalog(store).bulk_activate(
        session,
        ADMIN_ROLE_GUARD_NAME,
        [
            PermissionToggle(policy=resource, actions={action: True for action in CRUD_ACTIONS})
            for resource in MANAGED_RESOURCES
        ],
    )
    await RoleRegistry(store).assign_role(session, user=subject, role_guard_name=ADMIN_ROLE_GUARD_NAME)
