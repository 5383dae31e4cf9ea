# teamtrack/auth/base.py
"""
Контракт внешнего провайдера идентичности.

Ядро не создаёт учётные записи само: оно получает внешний ID после входа и
ведёт по нему профиль участника. Для добавления участника Owner'ом нужна
отдельная одноразовая сессия, чтобы не разлогинить самого Owner'а.
"""
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, Union

IdentityCallback = Callable[[Optional[str]], Union[None, Awaitable[None]]]

class IdentityProvider(ABC):

    @property
    @abstractmethod
    def current_identity(self) -> Optional[str]:
        """Внешний ID вошедшего пользователя или None."""

    @abstractmethod
    def on_identity_change(self, callback: IdentityCallback) -> Callable[[], None]:
        """Регистрирует обработчик смены идентичности; возвращает функцию отписки."""

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> str:
        """Возвращает внешний ID или поднимает AuthError."""

    @abstractmethod
    async def sign_out(self) -> None:
        ...

    @abstractmethod
    async def create_identity(self, email: str, password: str, display_name: Optional[str] = None) -> str:
        """Создаёт учётную запись, возвращает внешний ID или поднимает AuthError."""

    @abstractmethod
    def secondary_session(self):
        """
        Асинхронный контекстный менеджер: отдаёт одноразовую сессию провайдера,
        не затрагивающую текущую. При выходе сессия закрывается.
        """

    def display_name(self, external_id: str) -> Optional[str]:
        return None

    def email_for(self, external_id: str) -> Optional[str]:
        return None
