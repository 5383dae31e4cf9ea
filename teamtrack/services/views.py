# teamtrack/services/views.py
"""
Представления для UI поверх зеркал координатора: сводка, активные и завершённые задачи, команда.
"""
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from teamtrack.schemas.member import Member, Role
from teamtrack.schemas.task import Status, Task
from teamtrack.schemas.team import Team

class DashboardSummary(BaseModel):
    """
    DashboardSummary — общий прогресс workspace.
    """
    total: int = Field(0, description="Всего задач")
    completed: int = Field(0, description="Задач в статусе Done")
    progress: float = Field(0.0, description="Процент завершённых задач (0-100)")
    by_status: Dict[str, int] = Field(default_factory=dict, description="Количество задач по статусам")

class TeamMemberView(BaseModel):
    member: Member
    role: Role

class TeamOverview(BaseModel):
    team: Team
    members: List[TeamMemberView] = Field(default_factory=list)
    tasks: List[Task] = Field(default_factory=list)

def dashboard_summary(tasks: Iterable[Task]) -> DashboardSummary:
    tasks = list(tasks)
    by_status = {status.value: 0 for status in Status}
    for task in tasks:
        by_status[task.status.value] += 1
    total = len(tasks)
    completed = by_status[Status.DONE.value]
    progress = (completed / total) * 100 if total > 0 else 0.0
    return DashboardSummary(total=total, completed=completed, progress=progress, by_status=by_status)

def active_tasks(tasks: Iterable[Task], member_id: Optional[str] = None) -> List[Task]:
    """
    Незавершённые задачи по сроку; с member_id только назначенные на участника.
    """
    result = [
        t for t in tasks
        if not t.is_done and (member_id is None or member_id in t.assigned_to_ids)
    ]
    return sorted(result, key=lambda t: (t.due_date is None, t.due_date or datetime.max.date(), t.title))

def completed_tasks(tasks: Iterable[Task]) -> List[Task]:
    """Завершённые задачи, последние сверху."""
    oldest = datetime.min.replace(tzinfo=timezone.utc)
    done = [t for t in tasks if t.is_done]
    return sorted(done, key=lambda t: _aware(t.completed_at) or oldest, reverse=True)

def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

def team_overview(team: Team, members: Dict[str, Member], tasks: Iterable[Task]) -> TeamOverview:
    """
    Участники команды (включая удалённых, для истории) и задачи команды.
    """
    member_views = [
        TeamMemberView(member=members[ref.id], role=ref.role)
        for ref in team.member_ids
        if ref.id in members
    ]
    team_tasks = [t for t in tasks if t.team_id == team.id]
    return TeamOverview(team=team, members=member_views, tasks=team_tasks)

def member_name(members: Dict[str, Member], member_id: Optional[str], default: str = "N/A") -> str:
    """Имя участника, в том числе удалённого; default, если ID неизвестен."""
    if member_id is None or member_id not in members:
        return default
    return members[member_id].name or default
