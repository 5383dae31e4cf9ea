# teamtrack/initial_data.py

import asyncio
import logging
from typing import Optional
from sqlalchemy.orm import sessionmaker
from teamtrack.auth.local import LocalIdentityProvider
from teamtrack.core.exceptions import AuthError
from teamtrack.core.settings import settings
from teamtrack.database import SessionLocal, engine, init_db

logger = logging.getLogger("TeamTrack.InitialData")

async def create_first_owner_identity(session_factory: sessionmaker) -> Optional[str]:
    """
    Создаёт учётную запись первого Owner'а из настроек. Профиль с ролью Owner
    появится при первом входе (в workspace ещё нет активных Owner).
    """
    if not settings.FIRST_OWNER_EMAIL or not settings.FIRST_OWNER_PASSWORD:
        logger.info("FIRST_OWNER_EMAIL/FIRST_OWNER_PASSWORD are not set. Nothing to do.")
        return None

    provider = LocalIdentityProvider(session_factory)
    async with provider.secondary_session() as session:
        try:
            external_id = await session.create_identity(
                settings.FIRST_OWNER_EMAIL,
                settings.FIRST_OWNER_PASSWORD,
                display_name=settings.FIRST_OWNER_NAME,
            )
        except AuthError as e:
            logger.info(f"First owner identity not created: {e}")
            return None
    logger.info(f"First owner identity '{settings.FIRST_OWNER_EMAIL}' created ({external_id}).")
    return external_id

async def main() -> None:
    logger.info("Initializing database and first owner identity...")
    init_db(engine)
    await create_first_owner_identity(SessionLocal)
    logger.info("Finished initial data setup.")

if __name__ == "__main__":
    from dotenv import load_dotenv
    load_dotenv()

    logging.basicConfig(level=settings.LOG_LEVEL)
    asyncio.run(main())
