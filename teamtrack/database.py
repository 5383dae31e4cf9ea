# teamtrack/database.py

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from teamtrack.core.settings import settings

def build_engine(url: str = None, **kwargs) -> Engine:
    """
    Создаёт движок SQLAlchemy. Для SQLite отключаем check_same_thread,
    т.к. координатор может работать не в том потоке, где создан движок.
    """
    url = url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True, future=True, **kwargs)

def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        expire_on_commit=False,
    )

# Движок и фабрика сессий по умолчанию (ленивое подключение, до первого запроса)
engine = build_engine()
SessionLocal = build_session_factory(engine)

def init_db(bind: Engine = None) -> None:
    """
    Создаёт таблицы documents и credentials, если их ещё нет.
    """
    import teamtrack.models  # noqa: F401  регистрирует модели в Base.metadata
    from teamtrack.models.base import Base

    Base.metadata.create_all(bind=bind or engine)
