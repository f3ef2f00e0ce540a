import logging
import os
from contextlib import asynccontextmanager

import aioboto3
import uvicorn
from botocore.exceptions import ClientError
from fastapi import FastAPI, Request
from mangum import Mangum
from starlette.exceptions import HTTPException as StarletteHTTPException

from uploader.config import Settings, load_settings
from uploader.errors import UploaderError
from uploader.responses import cors_response
from uploader.routers import emails, presign

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
)

logger = logging.getLogger(__name__)


async def bootstrap_resources(settings: Settings, session: aioboto3.Session) -> None:
    """Ensure the bucket and metadata table exist (LocalStack / dev only)."""
    try:
        async with session.client("s3", **settings.aws_client_kwargs()) as s3:
            try:
                await s3.head_bucket(Bucket=settings.BUCKET_NAME)
                logger.info("Bucket %s exists.", settings.BUCKET_NAME)
            except ClientError:
                logger.info("Creating bucket %s...", settings.BUCKET_NAME)
                await s3.create_bucket(Bucket=settings.BUCKET_NAME)
    except Exception as e:
        logger.warning("Failed to bootstrap S3: %s", e)

    try:
        async with session.resource("dynamodb", **settings.aws_client_kwargs()) as dynamo:
            table = await dynamo.Table(settings.TABLE_NAME)
            try:
                await table.load()
                logger.info("Table %s exists.", settings.TABLE_NAME)
            except ClientError:
                logger.info("Creating table %s...", settings.TABLE_NAME)
                await dynamo.create_table(
                    TableName=settings.TABLE_NAME,
                    KeySchema=[{'AttributeName': 'imageKey', 'KeyType': 'HASH'}],
                    AttributeDefinitions=[{'AttributeName': 'imageKey', 'AttributeType': 'S'}],
                    BillingMode='PAY_PER_REQUEST',
                )
    except Exception as e:
        logger.warning("Failed to bootstrap DynamoDB: %s", e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configuration is read once per cold start and is immutable afterwards
    settings = await load_settings()
    app.state.settings = settings
    logging.getLogger().setLevel(settings.LOG_LEVEL.upper())
    logger.info("Starting photo uploader version=%s env=%s", settings.FUNCTION_VERSION, settings.ENV)

    missing = settings.missing_required()
    if missing:
        logger.error("Missing required configuration: %s", ", ".join(missing))

    if settings.is_local:
        await bootstrap_resources(settings, aioboto3.Session())

    yield
    logger.info("Shutting down...")


def create_app() -> FastAPI:
    root_path = os.environ.get("ROOT_PATH", "")
    app = FastAPI(title="Photo Uploader Service", lifespan=lifespan, root_path=root_path)

    @app.exception_handler(UploaderError)
    async def uploader_error_handler(request: Request, exc: UploaderError):
        return cors_response(exc.status_code, exc.to_body())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return cors_response(exc.status_code, {"error": exc.detail})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return cors_response(500, {"error": "Internal Server Error", "details": str(exc)})

    app.include_router(presign.router)
    app.include_router(emails.router)

    return app


app = create_app()

# Adapter for AWS Lambda
handler = Mangum(app)


if __name__ == "__main__":
    uvicorn.run("uploader.main:app", host="0.0.0.0", port=8000, reload=True, env_file=".env")
