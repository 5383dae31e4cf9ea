# teamtrack/rules/comments.py
from typing import Any, Dict, List, Optional

from teamtrack.core.exceptions import CommentValidationError
from teamtrack.store.base import SERVER_TIMESTAMP

Reactions = Dict[str, List[str]]

def toggle_reaction(reactions: Optional[Reactions], actor_id: str, emoji: str) -> Reactions:
    """
    Переключает реакцию участника на комментарий. У участника не больше одной
    реакции: новая emoji заменяет прежнюю, повтор той же emoji снимает её.
    Пустые списки удаляются. Входной словарь не изменяется.
    """
    if not emoji or not emoji.strip():
        raise CommentValidationError("Emoji is required.")
    current = reactions or {}
    had_this_emoji = actor_id in current.get(emoji, [])

    result: Reactions = {}
    for key, member_ids in current.items():
        remaining = [m for m in member_ids if m != actor_id]
        if remaining:
            result[key] = remaining

    if not had_this_emoji:
        result.setdefault(emoji, []).append(actor_id)
    return result

def member_reaction(reactions: Optional[Reactions], member_id: str) -> Optional[str]:
    for emoji, member_ids in (reactions or {}).items():
        if member_id in member_ids:
            return emoji
    return None

def reaction_counts(reactions: Optional[Reactions]) -> Dict[str, int]:
    return {emoji: len(ids) for emoji, ids in (reactions or {}).items() if ids}

def validate_new_comment(task_id: str, author_id: str, text: str, now: Any = SERVER_TIMESTAMP) -> Dict[str, Any]:
    """
    Документ нового комментария. Текст (rich text) хранится как есть, без пробелов по краям.
    """
    text = (text or "").strip()
    if not text:
        raise CommentValidationError("Comment text cannot be empty.")
    return {
        "task_id": task_id,
        "author_id": author_id,
        "text": text,
        "timestamp": now,
        "reactions": {},
    }
