# teamtrack/rules/tasks.py
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from teamtrack.core.exceptions import NotAuthorized, TaskValidationError
from teamtrack.schemas.member import Member
from teamtrack.schemas.task import Status, Task, TaskCreate, TaskUpdate, TASK_COLORS
from teamtrack.store.base import DELETE_FIELD

# Поля, изменение которых требует прав на редактирование задачи
EDIT_FIELDS = ("title", "description", "assigned_to_ids", "due_date", "color", "team_id")

@dataclass(frozen=True)
class Capabilities:
    can_edit_task: bool = False
    can_change_status: bool = False
    can_comment: bool = False
    can_delete: bool = False

NO_CAPABILITIES = Capabilities()

def capabilities_for(member: Optional[Member], task: Task) -> Capabilities:
    """
    Единая точка авторизации действий над задачей.
    Owner может всё; исполнитель меняет статус и комментирует; остальные ничего.
    """
    if member is None or member.is_deleted:
        return NO_CAPABILITIES
    if member.is_owner:
        return Capabilities(can_edit_task=True, can_change_status=True, can_comment=True, can_delete=True)
    if member.id in task.assigned_to_ids:
        return Capabilities(can_change_status=True, can_comment=True)
    return NO_CAPABILITIES

def can_create_task(member: Optional[Member]) -> bool:
    return member is not None and member.is_active and member.is_owner

def is_completion_consistent(task: Task) -> bool:
    """(completed_by_id задан) == (completed_at задан) == (status == Done)"""
    has_by = task.completed_by_id is not None
    has_at = task.completed_at is not None
    return has_by == has_at == task.is_done

def apply_status_change(task: Task, new_status: Status, actor_id: str, now: Any) -> Dict[str, Any]:
    """
    Patch перехода статуса с атрибуцией завершения:
    вход в Done записывает кто и когда, выход из Done удаляет оба поля,
    остальные переходы (включая Done -> Done) поля не трогают.
    """
    new_status = Status(new_status)
    patch: Dict[str, Any] = {"status": new_status.value}
    if new_status == Status.DONE and not task.is_done:
        patch["completed_by_id"] = actor_id
        patch["completed_at"] = now
    elif new_status != Status.DONE and task.is_done:
        patch["completed_by_id"] = DELETE_FIELD
        patch["completed_at"] = DELETE_FIELD
    return patch

def _validate_assignees(assigned_to_ids: List[str], members: Dict[str, Member],
                        already_assigned: Iterable[str] = ()) -> List[str]:
    """
    Новые исполнители должны быть активными участниками. Уже назначенные
    остаются в задаче, даже если их удалили из workspace после назначения.
    """
    already_assigned = set(already_assigned)
    if not assigned_to_ids:
        raise TaskValidationError("Task must be assigned to at least one member.")
    unique: List[str] = []
    for member_id in assigned_to_ids:
        if member_id in unique:
            continue
        if member_id in already_assigned:
            unique.append(member_id)
            continue
        member = members.get(member_id)
        if member is None:
            raise TaskValidationError(f"Assignee {member_id} is not a workspace member.")
        if member.is_deleted:
            raise TaskValidationError(f"Assignee {member.name or member_id} has been removed from the workspace.")
        unique.append(member_id)
    return unique

def _validate_color(color: Optional[str]) -> str:
    if color not in TASK_COLORS:
        raise TaskValidationError(f"Unknown task color: {color}. Allowed: {', '.join(TASK_COLORS)}.")
    return color

def _validate_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    if not title:
        raise TaskValidationError("Title is required.")
    return title

def validate_new_task(data: TaskCreate, members: Dict[str, Member]) -> Dict[str, Any]:
    """
    Проверяет данные новой задачи и возвращает документ для хранилища.
    Новая задача всегда начинается в To Do без полей завершения.
    """
    title = _validate_title(data.title)
    assigned = _validate_assignees(list(data.assigned_to_ids), members)
    if data.due_date is None:
        raise TaskValidationError("Due date is required.")
    color = _validate_color(data.color)
    return {
        "team_id": data.team_id,
        "title": title,
        "description": data.description or "",
        "assigned_to_ids": assigned,
        "status": Status.TODO.value,
        "due_date": data.due_date.isoformat(),
        "color": color,
    }

def build_task_patch(task: Task, changes: TaskUpdate, actor: Member,
                     members: Dict[str, Member], now: Any) -> Dict[str, Any]:
    """
    Собирает один patch для обновления задачи: проверка прав (правка полей
    требует can_edit_task, статус требует can_change_status), валидация и атрибуция.
    Ничего не пишет; при любой ошибке patch не возвращается.
    """
    data = changes.model_dump(exclude_unset=True)
    caps = capabilities_for(actor, task)
    edited = [f for f in EDIT_FIELDS if f in data]
    if edited and not caps.can_edit_task:
        raise NotAuthorized(f"Only an Owner can edit task fields: {', '.join(edited)}.")
    if data.get("status") is not None and not caps.can_change_status:
        raise NotAuthorized("Only an Owner or an assignee can change the task status.")

    patch: Dict[str, Any] = {}
    if "title" in data:
        patch["title"] = _validate_title(data["title"])
    if "description" in data:
        patch["description"] = data["description"] or ""
    if "assigned_to_ids" in data:
        patch["assigned_to_ids"] = _validate_assignees(
            list(data["assigned_to_ids"] or []), members, already_assigned=task.assigned_to_ids,
        )
    if "due_date" in data:
        due: Optional[date] = data["due_date"]
        if due is None:
            raise TaskValidationError("Due date is required.")
        patch["due_date"] = due.isoformat()
    if "color" in data:
        patch["color"] = _validate_color(data["color"])
    if "team_id" in data:
        patch["team_id"] = data["team_id"]
    if data.get("status") is not None:
        patch.update(apply_status_change(task, data["status"], actor.id, now))
    return patch

def ensure_can_delete(actor: Member, task: Task) -> None:
    if not capabilities_for(actor, task).can_delete:
        raise NotAuthorized("Only an Owner can delete tasks.")

def ensure_can_comment(actor: Member, task: Task) -> None:
    if not capabilities_for(actor, task).can_comment:
        raise NotAuthorized("Only an Owner or an assignee can comment on this task.")
