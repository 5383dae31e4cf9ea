#teamtrack/schemas/comment.py
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, List

class Comment(BaseModel):
    """
    Comment — комментарий к задаче с реакциями: emoji -> список ID участников.
    Каждый участник присутствует не более чем в одном списке.
    """
    id: str
    task_id: str = Field(..., description="ID задачи-владельца")
    author_id: str = Field(..., description="ID автора")
    text: str = Field("", description="Текст (rich text)")
    timestamp: Optional[datetime] = Field(None, description="Время записи (серверное)")
    reactions: Dict[str, List[str]] = Field(default_factory=dict, description="Реакции")

    model_config = ConfigDict(frozen=True)
