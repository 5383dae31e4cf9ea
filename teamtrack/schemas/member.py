#teamtrack/schemas/member.py
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, EmailStr, constr
from typing import Optional

class Role(str, Enum):
    """Роль участника workspace."""
    OWNER = "Owner"
    MEMBER = "Member"
    VIEWER = "Viewer"

class Member(BaseModel):
    """
    Member — профиль участника. id совпадает с внешним ID учётной записи.
    Удалённый (soft-delete) участник остаётся доступен для истории задач и комментариев.
    """
    id: str = Field(..., description="Стабильный непрозрачный ID")
    name: str = Field("", examples=["John Doe"], description="Отображаемое имя")
    email: str = Field("", examples=["john.doe@example.com"], description="Email (уникален среди активных)")
    role: Role = Field(Role.MEMBER, description="Роль: Owner, Member, Viewer")
    is_deleted: bool = Field(False, description="Soft-delete флаг")
    avatar_url: str = Field("", description="URL аватара")

    model_config = ConfigDict(frozen=True)

    @property
    def is_active(self) -> bool:
        return not self.is_deleted

    @property
    def is_owner(self) -> bool:
        return self.role == Role.OWNER

class MemberCreate(BaseModel):
    """
    MemberCreate — данные для добавления участника Owner'ом (создаётся и логин, и профиль).
    """
    name: constr(strip_whitespace=True, min_length=1) = Field(..., examples=["Jane Roe"], description="Полное имя")
    email: EmailStr = Field(..., examples=["jane@example.com"], description="Email для входа")
    password: constr(min_length=6) = Field(..., description="Начальный пароль")

class MemberProfileUpdate(BaseModel):
    """
    MemberProfileUpdate — изменение профиля (все поля опциональны). Роль меняется отдельно.
    """
    name: Optional[constr(strip_whitespace=True, min_length=1)] = None
    email: Optional[EmailStr] = None
    avatar_url: Optional[str] = None
