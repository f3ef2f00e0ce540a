from fastapi import Depends, Request

from uploader.config import Settings
from uploader.services import DatabaseService, EmailService, StorageService


def get_settings(request: Request) -> Settings:
    # populated once by the app lifespan; falls back to the environment when
    # the lifespan has not run (e.g. ASGI test transports)
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        settings = Settings()
        request.app.state.settings = settings
    return settings


async def get_storage_service(settings: Settings = Depends(get_settings)):
    return StorageService(settings)


async def get_db_service(settings: Settings = Depends(get_settings)):
    return DatabaseService(settings)


async def get_email_service(settings: Settings = Depends(get_settings)):
    return EmailService(settings)
