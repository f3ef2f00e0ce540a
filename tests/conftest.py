import base64

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from uploader.config import Settings
from uploader.dependencies import get_db_service, get_email_service, get_settings, get_storage_service
from uploader.main import app
from uploader.security import PasswordCipher
from uploader.services import StorageService

TEST_KEY = base64.b64encode(bytes(range(32))).decode("ascii")
TEST_PASSWORD = "correct horse battery staple"
TEST_BUCKET = "test-images-bucket"
TEST_TABLE = "test-images-table"


class FakeStorageService(StorageService):
    """Real URL construction, recorded (offline) signing."""

    def __init__(self, settings):
        super().__init__(settings, session=object())
        self.signed_keys = []
        self.fail_with = None

    async def generate_upload_url(self, key):
        if self.fail_with:
            raise self.fail_with
        self.signed_keys.append(key)
        return f"https://{self.settings.BUCKET_NAME}.s3.amazonaws.com/{key}?X-Amz-Expires=3600"


class FakeDatabaseService:
    def __init__(self):
        self.records = []
        self.fail_with = None

    async def save_upload_record(self, record):
        if self.fail_with:
            raise self.fail_with
        self.records.append(record)


class FakeEmailService:
    def __init__(self):
        self.sent = []
        self.fail_with = None

    async def send_email(self, sender, recipients, subject, html_body):
        if self.fail_with:
            raise self.fail_with
        self.sent.append({"sender": sender, "recipients": recipients, "subject": subject, "html": html_body})
        return f"message-{len(self.sent)}"


def make_settings(**overrides):
    values = {
        "AWS_REGION": "us-east-1",
        "AWS_ENDPOINT_URL": None,
        "BUCKET_NAME": TEST_BUCKET,
        "TABLE_NAME": TEST_TABLE,
        "CDN_DOMAIN": None,
        "ENCRYPTION_KEY": TEST_KEY,
        "APP_PASSWORD": TEST_PASSWORD,
        "FUNCTION_VERSION": "7",
        "DEFAULT_FROM_EMAIL": "noreply@example.com",
        "DEFAULT_TO_EMAIL": None,
        "_env_file": None,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def cipher():
    return PasswordCipher.from_base64(TEST_KEY)


@pytest.fixture
def credential(cipher):
    return cipher.encrypt(TEST_PASSWORD)


@pytest.fixture
def storage(settings):
    return FakeStorageService(settings)


@pytest.fixture
def db():
    return FakeDatabaseService()


@pytest.fixture
def mailer():
    return FakeEmailService()


@pytest_asyncio.fixture
async def client(settings, storage, db, mailer):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_storage_service] = lambda: storage
    app.dependency_overrides[get_db_service] = lambda: db
    app.dependency_overrides[get_email_service] = lambda: mailer
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
