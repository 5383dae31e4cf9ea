#teamtrack/schemas/team.py
from pydantic import BaseModel, ConfigDict, Field
from typing import List

from teamtrack.schemas.member import Role

class TeamMemberRef(BaseModel):
    """Участник команды и его роль на момент добавления."""
    id: str
    role: Role = Role.MEMBER

class Team(BaseModel):
    """
    Team — команда. Ядро только читает команды и перечисляет участников.
    """
    id: str
    name: str = Field("", examples=["Dev Team"], description="Название команды")
    description: str = Field("", description="Описание")
    member_ids: List[TeamMemberRef] = Field(default_factory=list, description="Участники")

    model_config = ConfigDict(frozen=True)
