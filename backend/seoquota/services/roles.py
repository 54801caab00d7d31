import logging
from typing import Optional
from uuid import UUID
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from seoquota.models.role import (
    RoleAssignment, ROLE_HIERARCHY, ROLE_FREE, ROLE_USER, ROLE_PRO, ROLE_SUPER, ROLE_ADMIN,
)

logger = logging.getLogger(__name__)


class InvalidRole(ValueError):
    def __init__(self, role: str):
        self.role = role
        super().__init__(f"Invalid role '{role}'. Valid roles are: {', '.join(ROLE_HIERARCHY)}")


class RoleChangeRejected(Exception):
    pass


def canonical_role(role: Optional[str]) -> Optional[str]:
    """Match ``role`` case-insensitively against the known roles (``pro`` -> ``Pro``)."""
    if not role:
        return None
    lowered = role.strip().lower()
    for known in ROLE_HIERARCHY:
        if known.lower() == lowered:
            return known
    return None


def role_level(role: str) -> int:
    role = canonical_role(role) or ROLE_FREE
    return ROLE_HIERARCHY.index(role) + 1


def role_flags(role: str) -> dict:
    level = role_level(role)
    return {
        "is_admin": level >= role_level(ROLE_ADMIN),
        "is_super": level >= role_level(ROLE_SUPER),
        "is_pro": level >= role_level(ROLE_PRO),
        "is_user": level >= role_level(ROLE_USER),
        "is_free": level >= role_level(ROLE_FREE),
        "role_level": level,
    }


async def get_active_assignment(db: AsyncSession, user_id: UUID) -> Optional[RoleAssignment]:
    result = await db.execute(
        select(RoleAssignment)
        .where(RoleAssignment.user_id == user_id, RoleAssignment.is_active == True)
        .order_by(RoleAssignment.granted_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_active_role(db: AsyncSession, user_id: UUID) -> str:
    """Read-only lookup; users without an assignment are reported as free."""
    assignment = await get_active_assignment(db, user_id)
    if not assignment:
        return ROLE_FREE
    return canonical_role(assignment.role) or ROLE_FREE


async def resolve_role(db: AsyncSession, user_id: UUID) -> str:
    """
    Return the active role for ``user_id``, creating a ``free`` assignment on
    first sight.

    Storage failures never propagate: the caller gets ``free``.
    """
    try:
        assignment = await get_active_assignment(db, user_id)
    except SQLAlchemyError as e:
        logger.warning(f"Role lookup failed for {user_id}, defaulting to free: {e}")
        await db.rollback()
        return ROLE_FREE

    if assignment:
        return canonical_role(assignment.role) or ROLE_FREE

    db.add(RoleAssignment(user_id=user_id, role=ROLE_FREE, is_active=True))
    try:
        await db.commit()
    except IntegrityError:
        # A concurrent request created the assignment first.
        await db.rollback()
        try:
            existing = await get_active_assignment(db, user_id)
        except SQLAlchemyError as e:
            logger.warning(f"Role re-read failed for {user_id}, defaulting to free: {e}")
            await db.rollback()
            return ROLE_FREE
        return (canonical_role(existing.role) if existing else None) or ROLE_FREE
    except SQLAlchemyError as e:
        logger.warning(f"Failed to create default role for {user_id}, using free: {e}")
        await db.rollback()
        return ROLE_FREE

    logger.info(f"Created default free role for user {user_id}")
    return ROLE_FREE


async def set_user_role(
    db: AsyncSession,
    user_id: UUID,
    role: str,
    actor_id: Optional[UUID] = None,
    reason: Optional[str] = None,
) -> tuple[str, str, bool]:
    """
    Change the active role of ``user_id``.

    Returns ``(previous_role, new_role, changed)``. Ledger limits are left
    untouched; only a plan-change reset rewrites them.
    """
    new_role = canonical_role(role)
    if not new_role:
        raise InvalidRole(role)
    if actor_id is not None and actor_id == user_id and new_role != ROLE_ADMIN:
        raise RoleChangeRejected("Cannot demote yourself from admin role")

    assignment = await get_active_assignment(db, user_id)
    previous = (canonical_role(assignment.role) or ROLE_FREE) if assignment else ROLE_FREE
    if assignment and previous == new_role:
        return previous, new_role, False

    if assignment:
        assignment.role = new_role
    else:
        db.add(RoleAssignment(user_id=user_id, role=new_role, is_active=True))
    await db.commit()
    if previous == new_role:
        return previous, new_role, False

    logger.info(
        f"Role for {user_id} changed {previous} -> {new_role}"
        f" (by={actor_id or 'system'}, reason={reason or '-'})"
    )
    return previous, new_role, True
