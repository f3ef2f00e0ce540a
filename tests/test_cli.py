import json
from datetime import datetime, timezone

import httpx
import pytest
from click.testing import CliRunner

from conftest import TEST_KEY, TEST_PASSWORD
from uploader import cli as cli_module
from uploader.cli import UploaderClient, build_object_key, cli, notification_html
from uploader.security import PasswordCipher

API_URL = "https://api.example.com/prod/presign-url"
EMAIL_URL = "https://api.example.com/prod/emails"


def test_build_object_key():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert build_object_key("photo.png", now) == "2024-01-01T00-00-00-000Z_photo.png"
    assert build_object_key("my holiday (1).jpg", now) == "2024-01-01T00-00-00-000Z_my_holiday__1_.jpg"


def test_notification_html():
    html = notification_html("https://cdn/x.png", None)
    assert "No description provided" in html
    assert 'href="https://cdn/x.png"' in html
    assert "sunset" in notification_html("https://cdn/x.png", "sunset")


class FakeApi:
    """httpx.MockTransport handler standing in for the deployed API and S3."""

    def __init__(self):
        self.requests = []
        self.cipher = PasswordCipher.from_base64(TEST_KEY)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "PUT":
            return httpx.Response(200)
        body = json.loads(request.content)
        if str(request.url) == EMAIL_URL:
            return httpx.Response(200, json={"message": "Email sent successfully", "messageId": "m-1"})
        if body["operation"] == "get_version":
            return httpx.Response(200, json={"version": "3"})
        if not self.cipher.matches(body["password"], TEST_PASSWORD):
            return httpx.Response(401, json={"error": "Unauthorized: Invalid password"})
        if body["operation"] == "put_object":
            return httpx.Response(200, json={"url": f"https://bucket.s3.amazonaws.com/{body['key']}?sig=1"})
        return httpx.Response(200, json={"url": f"https://cdn.example.com/{body['key']}"})


@pytest.fixture
def fake_api(monkeypatch):
    api = FakeApi()
    real_client = httpx.Client

    def client_factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(api)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(cli_module.httpx, "Client", client_factory)
    return api


def test_upload_flow(fake_api, tmp_path):
    photo = tmp_path / "photo.png"
    photo.write_bytes(b"\x89PNG fake")

    result = CliRunner().invoke(cli, [
        "upload", str(photo), "-d", "sunset", "--notify",
        "--api-url", API_URL, "--email-url", EMAIL_URL,
        "--password", TEST_PASSWORD, "--key", TEST_KEY,
    ])
    assert result.exit_code == 0, result.output

    put_request, upload, read_request, email = (
        fake_api.requests[0], fake_api.requests[1], fake_api.requests[2], fake_api.requests[3])
    put_body = json.loads(put_request.content)
    assert put_body["operation"] == "put_object"
    assert put_body["description"] == "sunset"
    assert put_body["key"].endswith("_photo.png")

    assert upload.method == "PUT"
    assert upload.headers["content-type"] == "image/png"
    assert upload.content == b"\x89PNG fake"

    read_body = json.loads(read_request.content)
    assert read_body["operation"] == "get_object"
    assert "description" not in read_body

    assert "sunset" in json.loads(email.content)["message"]
    assert result.output.strip().splitlines()[-1] == f"https://cdn.example.com/{put_body['key']}"


def test_upload_rejects_non_images(fake_api, tmp_path):
    notes = tmp_path / "notes.txt"
    notes.write_text("hello")
    result = CliRunner().invoke(cli, ["upload", str(notes), "--api-url", API_URL,
                                      "--password", TEST_PASSWORD, "--key", TEST_KEY])
    assert result.exit_code != 0
    assert "Please select an image file" in result.output
    assert fake_api.requests == []


def test_upload_reports_api_errors(fake_api, tmp_path):
    photo = tmp_path / "photo.jpg"
    photo.write_bytes(b"jpeg")
    result = CliRunner().invoke(cli, ["upload", str(photo), "--api-url", API_URL,
                                      "--password", "wrong", "--key", TEST_KEY])
    assert result.exit_code != 0
    assert "401" in result.output
    assert "Unauthorized: Invalid password" in result.output


def test_version(fake_api):
    result = CliRunner().invoke(cli, ["version", "--api-url", API_URL])
    assert result.exit_code == 0
    assert result.output.strip() == "3"


def test_encrypt_password_round_trip():
    result = CliRunner().invoke(cli, ["encrypt-password", "--password", "pw", "--key", TEST_KEY])
    assert result.exit_code == 0
    assert PasswordCipher.from_base64(TEST_KEY).decrypt(result.output.strip()) == "pw"


def test_generate_key():
    result = CliRunner().invoke(cli, ["generate-key"])
    assert result.exit_code == 0
    PasswordCipher.from_base64(result.output.strip())


def test_client_without_email_url():
    client = UploaderClient(API_URL, http=httpx.Client(transport=httpx.MockTransport(FakeApi())))
    with pytest.raises(Exception, match="No email endpoint"):
        client.send_notification("https://cdn/x", None)
