from __future__ import annotations

import argparse
import asyncio
import sys

from docgate.core.logging import configure_logging
from docgate.domain.schemas import PermissionToggle
from docgate.domain.scope import CRUD_ACTIONS, MANAGED_RESOURCES, PolicyTuple
from docgate.persistence.db import SessionLocal, create_schema, engine
from docgate.persistence.repos import roles as roles_repo
from docgate.services import statuses as status_service
from docgate.services.authz.tuples import PolicyTupleStore
from docgate.services.catalog import ADMIN_ROLE_GUARD_NAME, PolicyCatalog
from docgate.services.roles import RoleRegistry


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Grant a subject full unscoped administration rights")
    parser.add_argument("--subject", required=True, help="Subject identifier issued by the identity provider")
    parser.add_argument("--role-name", default="Administrator", help="Display name for the admin role")
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create tables directly instead of relying on alembic (local runs only)",
    )
    return parser


async def _bootstrap(args: argparse.Namespace) -> int:
    if args.create_schema:
        await create_schema()

    store = PolicyTupleStore.from_settings()
    registry = RoleRegistry(store)
    async with SessionLocal() as session:
        await store.load(session)
        statuses = await status_service.seed_default_statuses(session)
        if await roles_repo.get_role_by_guard_name(session, ADMIN_ROLE_GUARD_NAME) is None:
            await registry.create_role(session, name=args.role_name, guard_name=ADMIN_ROLE_GUARD_NAME)
        # Re-activating existing rules only re-adds missing tuples.
        result = await PolicyCatalog(store).bulk_activate(
            session,
            ADMIN_ROLE_GUARD_NAME,
            [
                PermissionToggle(policy=resource, actions={action: True for action in CRUD_ACTIONS})
                for resource in MANAGED_RESOURCES
            ],
        )
        binding = PolicyTuple.grouping(args.subject, ADMIN_ROLE_GUARD_NAME)
        if not await store.has_tuple(session, binding):
            await registry.assign_role(session, user=args.subject, role_guard_name=ADMIN_ROLE_GUARD_NAME)
    await engine.dispose()

    print("Admin bootstrap complete:")
    print(f"  subject: {args.subject}")
    print(f"  role: {ADMIN_ROLE_GUARD_NAME}")
    print(f"  rules: {len(result.activated)}")
    print(f"  statuses: {', '.join(status.name for status in statuses)}")
    return 0


def main() -> int:
    configure_logging()
    args = _build_parser().parse_args()
    try:
        return asyncio.run(_bootstrap(args))
    except Exception as exc:  # noqa: BLE001 - surface provisioning failures clearly
        print(f"bootstrap_admin failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
