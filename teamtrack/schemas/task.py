#teamtrack/schemas/task.py
from datetime import date, datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List

class Status(str, Enum):
    """Статус задачи. Плоское множество: из любого статуса можно перейти в любой."""
    TODO = "To Do"
    IN_PROGRESS = "In Progress"
    BLOCKED = "Blocked"
    DONE = "Done"

# Палитра цветовых меток задачи (косметика)
TASK_COLORS = ("Gray", "Red", "Orange", "Amber", "Green", "Blue", "Purple")
DEFAULT_TASK_COLOR = TASK_COLORS[0]

class Task(BaseModel):
    """
    Task — задача workspace. completed_by_id/completed_at заданы тогда и только тогда,
    когда статус Done.
    """
    id: str
    team_id: Optional[str] = Field(None, description="ID команды (необязательная группировка)")
    title: str = Field("", examples=["Prepare release notes"], description="Название задачи")
    description: str = Field("", description="Описание (rich text, хранится как есть)")
    assigned_to_ids: List[str] = Field(default_factory=list, description="ID назначенных участников")
    status: Status = Field(Status.TODO, description="Статус")
    due_date: Optional[date] = Field(None, examples=["2024-12-31"], description="Срок")
    color: str = Field(DEFAULT_TASK_COLOR, description="Цветовая метка")
    completed_by_id: Optional[str] = Field(None, description="Кто перевёл задачу в Done")
    completed_at: Optional[datetime] = Field(None, description="Когда задача переведена в Done")

    model_config = ConfigDict(frozen=True)

    @property
    def is_done(self) -> bool:
        return self.status == Status.DONE

class TaskCreate(BaseModel):
    """
    TaskCreate — создание задачи. Бизнес-валидация (непустые исполнители, срок, цвет)
    выполняется в teamtrack.rules.tasks, чтобы отдавать TaskValidationError.
    """
    title: str = ""
    description: str = ""
    assigned_to_ids: List[str] = Field(default_factory=list)
    due_date: Optional[date] = None
    color: str = DEFAULT_TASK_COLOR
    team_id: Optional[str] = None

class TaskUpdate(BaseModel):
    """
    TaskUpdate — обновление задачи (все поля опциональны, учитываются только переданные).
    """
    title: Optional[str] = None
    description: Optional[str] = None
    assigned_to_ids: Optional[List[str]] = None
    status: Optional[Status] = None
    due_date: Optional[date] = None
    color: Optional[str] = None
    team_id: Optional[str] = None
