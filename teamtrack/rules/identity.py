# teamtrack/rules/identity.py
"""
Правила ролей и soft-delete участников.

Все функции чистые: получают снимок участников и явно переданного актора,
возвращают решение или patch для хранилища и ничего не пишут сами.
Главный инвариант: пока в workspace есть хоть один участник, среди активных
участников есть хотя бы один Owner.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from teamtrack.core.exceptions import (
    AccountDeactivated,
    LastOwnerViolation,
    MemberValidationError,
    NotAuthorized,
)
from teamtrack.schemas.member import Member, Role

logger = logging.getLogger("TeamTrack.Identity")

# Варианты решения bootstrap_or_promote
CREATE = "create"
PROMOTE = "promote"
NONE = "none"

@dataclass(frozen=True)
class BootstrapDecision:
    action: str
    role: Optional[Role] = None

def active_members(members: Iterable[Member]) -> List[Member]:
    """
    Активные участники (без soft-deleted), отсортированные по имени.
    """
    return sorted((m for m in members if m.is_active), key=lambda m: (m.name.lower(), m.id))

def count_active_owners(members: Iterable[Member]) -> int:
    return sum(1 for m in members if m.is_active and m.is_owner)

def resolve_initial_role(members: Iterable[Member]) -> Role:
    """Owner, если активного Owner нет; иначе Member."""
    return Role.OWNER if count_active_owners(members) == 0 else Role.MEMBER

def bootstrap_or_promote(external_id: str, profile: Optional[Member], members: Iterable[Member]) -> BootstrapDecision:
    """
    Решает, что сделать с профилем при входе:
    нет профиля -> create (Owner, если активных Owner нет);
    профиль удалён -> AccountDeactivated;
    активных Owner нет нигде -> promote до Owner (самовосстановление);
    иначе -> none. Повторный вызов на том же состоянии даёт тот же результат.
    """
    members = list(members)
    if profile is None:
        role = resolve_initial_role(members)
        return BootstrapDecision(CREATE, role)
    if profile.is_deleted:
        logger.warning(f"Deactivated account {external_id} tried to sign in")
        raise AccountDeactivated("This account has been deactivated. Contact a workspace Owner.")
    if count_active_owners(members) == 0:
        return BootstrapDecision(PROMOTE, Role.OWNER)
    return BootstrapDecision(NONE)

def ensure_active(actor: Optional[Member]) -> Member:
    """
    Актор должен существовать и быть активным.
    """
    if actor is None:
        raise NotAuthorized("No member is signed in.")
    if actor.is_deleted:
        raise AccountDeactivated("This account has been deactivated.")
    return actor

def ensure_owner(actor: Optional[Member], action: str = "manage members") -> Member:
    actor = ensure_active(actor)
    if not actor.is_owner:
        raise NotAuthorized(f"Only an Owner can {action}.")
    return actor

def _would_remove_last_owner(target: Member, members: Iterable[Member]) -> bool:
    return target.is_owner and count_active_owners(members) <= 1

def can_change_role(acting_role: Role, target: Member, new_role: Role, members: Iterable[Member]) -> bool:
    """
    Смена роли разрешена Owner'у, если она не оставит workspace без активного Owner.
    """
    if acting_role != Role.OWNER:
        return False
    if new_role != Role.OWNER and _would_remove_last_owner(target, members):
        return False
    return True

def ensure_can_demote(target: Member, new_role: Role, members: Iterable[Member]) -> None:
    if new_role != Role.OWNER and _would_remove_last_owner(target, members):
        raise LastOwnerViolation("Cannot demote the last active Owner.")

def demote(target: Member, new_role: Role, members: Iterable[Member]) -> Dict[str, Any]:
    """
    Patch смены роли. Повышение до Owner никогда не нарушает инвариант.
    """
    new_role = Role(new_role)
    ensure_can_demote(target, new_role, members)
    return {"role": new_role.value}

def ensure_can_remove(target: Member, members: Iterable[Member]) -> None:
    if _would_remove_last_owner(target, members):
        raise LastOwnerViolation("Cannot remove the last active Owner.")

def soft_delete(target: Member, members: Iterable[Member]) -> Dict[str, Any]:
    """
    Patch soft-delete. ID участника остаётся валидным в истории задач и комментариев.
    """
    ensure_can_remove(target, members)
    return {"is_deleted": True}

def restore(target: Member) -> Dict[str, Any]:
    return {"is_deleted": False}

def ensure_unique_email(email: str, members: Iterable[Member], exclude_id: Optional[str] = None) -> str:
    """
    Email уникален среди активных участников без учёта регистра. Возвращает email без пробелов.
    """
    email = (email or "").strip()
    if not email:
        raise MemberValidationError("Email is required.")
    lowered = email.lower()
    for m in members:
        if m.is_active and m.id != exclude_id and m.email.strip().lower() == lowered:
            raise MemberValidationError(f"Member with email '{email}' already exists.")
    return email

def build_profile(external_id: str, name: str, email: str, role: Role, avatar_url: str) -> Dict[str, Any]:
    """Документ нового профиля."""
    return Member(
        id=external_id,
        name=(name or "").strip(),
        email=(email or "").strip(),
        role=role,
        is_deleted=False,
        avatar_url=avatar_url,
    ).model_dump(mode="json", exclude={"id"})
