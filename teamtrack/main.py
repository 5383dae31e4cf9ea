# teamtrack/main.py

import logging
from typing import Optional

from teamtrack.auth.local import LocalIdentityProvider
from teamtrack.core.settings import Settings, settings as default_settings
from teamtrack.database import build_engine, build_session_factory, init_db
from teamtrack.services.workspace import WorkspaceCoordinator
from teamtrack.store.sql import SqlDocumentStore

logger = logging.getLogger("TeamTrack")

def configure_logging(settings: Settings = default_settings) -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

def create_workspace(settings: Optional[Settings] = None) -> WorkspaceCoordinator:
    """
    Собирает координатор на SQL-хранилище и локальном провайдере идентичности.
    Вызывающий код должен выполнить `await coordinator.start()`.
    """
    settings = settings or default_settings
    engine = build_engine(settings.DATABASE_URL)
    init_db(engine)
    session_factory = build_session_factory(engine)

    store = SqlDocumentStore(session_factory)
    identity = LocalIdentityProvider(session_factory, secret_key=settings.SECRET_KEY)
    logger.info(f"TeamTrack workspace configured ({settings.ENV}, database: {engine.url.render_as_string(hide_password=True)})")
    return WorkspaceCoordinator(store, identity, settings=settings)
