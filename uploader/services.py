import logging
import re
from typing import List, Optional

import aioboto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from uploader.config import Settings
from uploader.errors import DependencyError
from uploader.models import UploadRecord

logger = logging.getLogger(__name__)

PUT_URL_EXPIRES_IN = 3600  # 1 hour

_HTML_TAG = re.compile(r"<[^>]*>")


def strip_html(html: str) -> str:
    return _HTML_TAG.sub("", html)


class StorageService:
    def __init__(self, settings: Settings, session: Optional[aioboto3.Session] = None):
        self.settings = settings
        self.session = session or aioboto3.Session()

    def object_url(self, key: str) -> str:
        """Direct (unsigned) URL for reading ``key``: CDN first, then S3."""
        if self.settings.CDN_DOMAIN:
            return f"https://{self.settings.CDN_DOMAIN}/{key}"
        if self.settings.AWS_ENDPOINT_URL:
            # LocalStack serves path-style only
            return f"{self.settings.AWS_ENDPOINT_URL.rstrip('/')}/{self.settings.BUCKET_NAME}/{key}"
        return f"https://{self.settings.BUCKET_NAME}.s3.{self.settings.AWS_REGION}.amazonaws.com/{key}"

    async def generate_upload_url(self, key: str) -> str:
        async with self.session.client("s3",
                                       config=Config(signature_version="s3v4"),
                                       **self.settings.aws_client_kwargs()) as s3:
            try:
                return await s3.generate_presigned_url('put_object',
                                                       Params={'Bucket': self.settings.BUCKET_NAME,
                                                               'Key': key},
                                                       ExpiresIn=PUT_URL_EXPIRES_IN)
            except (ClientError, BotoCoreError) as e:
                logger.exception("Error generating presigned URL for %s", key)
                raise DependencyError("Failed to generate upload URL", details=str(e)) from e


class DatabaseService:
    def __init__(self, settings: Settings, session: Optional[aioboto3.Session] = None):
        self.settings = settings
        self.session = session or aioboto3.Session()

    async def save_upload_record(self, record: UploadRecord):
        async with self.session.resource("dynamodb", **self.settings.aws_client_kwargs()) as dynamo:
            table = await dynamo.Table(self.settings.TABLE_NAME)
            try:
                await table.put_item(Item=record.to_item())
            except (ClientError, BotoCoreError) as e:
                logger.exception("Failed to save metadata for %s", record.image_key)
                raise DependencyError("Failed to save image metadata", details=str(e)) from e
        logger.info("Saved metadata for %s to %s", record.image_key, self.settings.TABLE_NAME)


class EmailService:
    def __init__(self, settings: Settings, session: Optional[aioboto3.Session] = None):
        self.settings = settings
        self.session = session or aioboto3.Session()

    async def send_email(self, sender: Optional[str], recipients: List[str], subject: str, html_body: str) -> str:
        """Send through SES and return the SES message id."""
        params = {
            "Destination": {"ToAddresses": recipients},
            "Message": {
                "Body": {
                    "Html": {"Charset": "UTF-8", "Data": html_body},
                    "Text": {"Charset": "UTF-8", "Data": strip_html(html_body)},
                },
                "Subject": {"Charset": "UTF-8", "Data": subject},
            },
            "Source": sender or self.settings.DEFAULT_FROM_EMAIL,
        }
        async with self.session.client("ses", **self.settings.aws_client_kwargs()) as ses:
            try:
                result = await ses.send_email(**params)
            except (ClientError, BotoCoreError) as e:
                logger.exception("Error sending email")
                raise DependencyError("Failed to send email", details=str(e)) from e
        logger.info("Email sent successfully: %s", result["MessageId"])
        return result["MessageId"]
