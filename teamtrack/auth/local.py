# teamtrack/auth/local.py
import inspect
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from teamtrack.auth.base import IdentityCallback, IdentityProvider
from teamtrack.core import security
from teamtrack.core.exceptions import AuthError
from teamtrack.models.credential import Credential

logger = logging.getLogger("TeamTrack.Auth")

MIN_PASSWORD_LENGTH = 6

class LocalIdentityProvider(IdentityProvider):
    """
    Провайдер идентичности на таблице credentials. Каждый экземпляр это отдельная
    сессия входа; учётные записи общие для всех экземпляров с одной фабрикой сессий.
    """

    def __init__(self, session_factory: sessionmaker, secret_key: Optional[str] = None):
        self._session_factory = session_factory
        self._secret_key = secret_key
        self._current: Optional[str] = None
        self._token: Optional[str] = None
        self._listeners: List[IdentityCallback] = []

    @property
    def current_identity(self) -> Optional[str]:
        return self._current

    @property
    def current_token(self) -> Optional[str]:
        return self._token

    def on_identity_change(self, callback: IdentityCallback) -> Callable[[], None]:
        self._listeners.append(callback)

        def _remove():
            if callback in self._listeners:
                self._listeners.remove(callback)
        return _remove

    async def _set_identity(self, external_id: Optional[str], token: Optional[str]) -> None:
        self._current = external_id
        self._token = token
        for callback in list(self._listeners):
            result = callback(external_id)
            if inspect.isawaitable(result):
                await result

    async def sign_in(self, email: str, password: str) -> str:
        normalized = (email or "").strip().lower()
        db = self._session_factory()
        try:
            credential = db.query(Credential).filter(func.lower(Credential.email) == normalized).first()
            if not credential or not security.verify_password(password or "", credential.password_hash):
                logger.warning(f"Failed sign-in attempt for '{normalized}'")
                raise AuthError("Invalid email or password.")
            credential.last_login_at = datetime.now(timezone.utc)
            db.commit()
            external_id = credential.external_id
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error during sign-in: {e}")
            raise AuthError("Database error during sign-in.") from e
        finally:
            db.close()

        token, _ = security.create_access_token({"sub": external_id}, secret_key=self._secret_key)
        logger.info(f"Signed in identity {external_id}")
        await self._set_identity(external_id, token)
        return external_id

    async def restore_session(self, token: str) -> str:
        """
        Восстанавливает сессию по ранее выданному токену.
        """
        payload = security.verify_access_token(token, secret_key=self._secret_key)
        if payload is None or not payload.get("sub"):
            raise AuthError("Session token is invalid or expired.")
        await self._set_identity(payload["sub"], token)
        return payload["sub"]

    async def sign_out(self) -> None:
        if self._current is None:
            return
        logger.info(f"Signed out identity {self._current}")
        await self._set_identity(None, None)

    async def create_identity(self, email: str, password: str, display_name: Optional[str] = None) -> str:
        """
        Создаёт учётную запись и входит под ней в этой сессии (как это делают
        облачные провайдеры), поэтому вызывать её стоит через secondary_session().
        """
        normalized = (email or "").strip().lower()
        if not normalized:
            raise AuthError("Email is required.")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise AuthError(f"Password should be at least {MIN_PASSWORD_LENGTH} characters.")

        external_id = uuid.uuid4().hex
        db = self._session_factory()
        try:
            if db.query(Credential).filter(func.lower(Credential.email) == normalized).first():
                raise AuthError("Identity with this email already exists.")
            db.add(Credential(
                external_id=external_id,
                email=normalized,
                display_name=(display_name or "").strip() or None,
                password_hash=security.hash_password(password),
            ))
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.error(f"Integrity error while creating identity: {e}")
            raise AuthError("Identity with this email already exists.") from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while creating identity: {e}")
            raise AuthError("Database error while creating identity.") from e
        finally:
            db.close()

        logger.info(f"Created identity {external_id} for '{normalized}'")
        token, _ = security.create_access_token({"sub": external_id}, secret_key=self._secret_key)
        await self._set_identity(external_id, token)
        return external_id

    @asynccontextmanager
    async def secondary_session(self):
        session = LocalIdentityProvider(self._session_factory, secret_key=self._secret_key)
        try:
            yield session
        finally:
            await session.sign_out()

    def display_name(self, external_id: str) -> Optional[str]:
        db = self._session_factory()
        try:
            credential = db.query(Credential).filter(Credential.external_id == external_id).first()
            return credential.display_name if credential else None
        finally:
            db.close()

    def email_for(self, external_id: str) -> Optional[str]:
        db = self._session_factory()
        try:
            credential = db.query(Credential).filter(Credential.external_id == external_id).first()
            return credential.email if credential else None
        finally:
            db.close()
