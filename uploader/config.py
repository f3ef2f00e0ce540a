import logging
import os
from typing import Optional

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# SSM parameter name (under SSM_PREFIX) -> settings field
SSM_PARAMETERS = {
    "bucket_name": "BUCKET_NAME",
    "table_name": "TABLE_NAME",
    "cdn_domain": "CDN_DOMAIN",
    "encryption_key": "ENCRYPTION_KEY",
    "app_password": "APP_PASSWORD",
}


class Settings(BaseSettings):
    AWS_REGION: str = "us-east-1"
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_ENDPOINT_URL: Optional[str] = None
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    BUCKET_NAME: str = "photo-uploader-images"
    TABLE_NAME: str = "photo-uploader-metadata"
    CDN_DOMAIN: Optional[str] = None

    # base64 of the raw AES key, and the plaintext the decrypted credential must equal
    ENCRYPTION_KEY: str = ""
    APP_PASSWORD: str = ""

    FUNCTION_VERSION: str = Field(
        default="$LATEST",
        validation_alias=AliasChoices("FUNCTION_VERSION", "AWS_LAMBDA_FUNCTION_VERSION"),
    )

    DEFAULT_FROM_EMAIL: Optional[str] = None
    DEFAULT_TO_EMAIL: Optional[str] = None

    SSM_PREFIX: str = "/photo-uploader"

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
        "frozen": True,
    }

    @property
    def aws_endpoint(self) -> Optional[str]:
        if self.AWS_ENDPOINT_URL:
            return self.AWS_ENDPOINT_URL
        localstack_host = os.environ.get("LOCALSTACK_HOSTNAME")
        if localstack_host:
            return f"http://{localstack_host}:4566"
        return None

    @property
    def is_local(self) -> bool:
        return self.ENV in ("dev", "local")

    def aws_client_kwargs(self) -> dict:
        """Keyword arguments shared by every aioboto3 client and resource.

        Credentials are only passed when set explicitly so that Lambda falls
        back to the execution role.
        """
        kwargs = {"region_name": self.AWS_REGION, "endpoint_url": self.aws_endpoint}
        if self.AWS_ACCESS_KEY_ID and self.AWS_SECRET_ACCESS_KEY:
            kwargs["aws_access_key_id"] = self.AWS_ACCESS_KEY_ID
            kwargs["aws_secret_access_key"] = self.AWS_SECRET_ACCESS_KEY
        return kwargs

    def missing_required(self) -> list[str]:
        missing = []
        if not self.ENCRYPTION_KEY:
            missing.append("ENCRYPTION_KEY")
        if not self.APP_PASSWORD:
            missing.append("APP_PASSWORD")
        return missing


async def fetch_ssm_params(settings: Settings, session: Optional[aioboto3.Session] = None) -> dict:
    """
    Fetches configuration overrides from SSM Parameter Store.
    Returns a mapping of settings field -> value for every parameter found.
    """
    session = session or aioboto3.Session()
    names = {f"{settings.SSM_PREFIX}/{name}": field for name, field in SSM_PARAMETERS.items()}
    overrides = {}
    try:
        async with session.client("ssm", **settings.aws_client_kwargs()) as ssm:
            response = await ssm.get_parameters(Names=list(names), WithDecryption=True)
    except (ClientError, BotoCoreError) as e:
        logger.warning("Failed to fetch parameters from SSM, using environment values: %s", e)
        return overrides

    for param in response.get("Parameters", []):
        field = names.get(param["Name"])
        if field:
            overrides[field] = param["Value"]

    logger.info("Loaded %d parameter(s) from SSM under %s", len(overrides), settings.SSM_PREFIX)
    return overrides


async def load_settings(session: Optional[aioboto3.Session] = None) -> Settings:
    """Build the process-wide settings: environment first, then SSM overrides."""
    settings = Settings()
    overrides = await fetch_ssm_params(settings, session=session)
    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings
