# teamtrack/core/security.py

from datetime import datetime, timedelta, timezone
from typing import Optional, Any, Dict
from jose import JWTError, jwt
from passlib.context import CryptContext
from teamtrack.core.settings import settings

# pbkdf2_sha256 не требует нативного бэкенда
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)

def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None,
    secret_key: Optional[str] = None,
) -> tuple[str, datetime]:
    """
    Генерирует access token (JWT) сессии и возвращает (token, expire_time)
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": "access"})
    encoded_jwt = jwt.encode(to_encode, secret_key or settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return encoded_jwt, expire

def verify_access_token(token: str, secret_key: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Декодирует и валидирует access token. None, если токен неверный или истёк.
    """
    try:
        payload = jwt.decode(token, secret_key or settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        if payload.get("type") != "access":
            return None
        return payload
    except JWTError:
        return None
