"""photo-uploader command-line client.

Drives the same flow as the browser uploader:
    photo-uploader upload photo.png -d "sunset" --notify
    photo-uploader version
    photo-uploader encrypt-password
    photo-uploader generate-key
"""

from __future__ import annotations

import mimetypes
import re
from datetime import datetime, timezone
from pathlib import Path

import click
import httpx

from uploader.security import PasswordCipher, generate_key

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def build_object_key(filename: str, now: datetime | None = None) -> str:
    """``2024-01-01T00-00-00-000Z_photo.png`` style key for an upload."""
    now = now or datetime.now(timezone.utc)
    stamp = now.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    stamp = stamp.replace(":", "-").replace(".", "-")
    return f"{stamp}_{_UNSAFE_NAME_CHARS.sub('_', filename)}"


def notification_html(image_url: str, description: str | None) -> str:
    return (
        "<h3>A new image has been uploaded!</h3>"
        f"<p><strong>Description:</strong> {description or 'No description provided'}</p>"
        f'<p><strong>View Image:</strong> <a href="{image_url}" target="_blank">{image_url}</a></p>'
    )


class UploaderClient:
    """Thin HTTP client for the presign and email endpoints."""

    def __init__(self, api_url: str, email_url: str | None = None, credential: str | None = None,
                 http: httpx.Client | None = None) -> None:
        self.api_url = api_url
        self.email_url = email_url
        self.credential = credential
        self._http = http or httpx.Client(timeout=30.0)

    def _post(self, url: str, payload: dict) -> dict:
        response = self._http.post(url, json=payload)
        if response.status_code != 200:
            try:
                error = response.json().get("error", response.reason_phrase)
            except ValueError:
                error = response.reason_phrase
            raise click.ClickException(f"{url} returned {response.status_code}: {error}")
        return response.json()

    def presigned_url(self, key: str, operation: str, description: str | None = None) -> str:
        payload = {"key": key, "operation": operation, "password": self.credential}
        if description is not None and operation == "put_object":
            payload["description"] = description
        return self._post(self.api_url, payload)["url"]

    def version(self) -> str:
        return self._post(self.api_url, {"operation": "get_version"})["version"]

    def put_file(self, url: str, data: bytes, content_type: str) -> None:
        response = self._http.put(url, content=data, headers={"Content-Type": content_type})
        if response.is_error:
            raise click.ClickException(f"Failed to upload file: {response.status_code} {response.reason_phrase}")

    def send_notification(self, image_url: str, description: str | None) -> str:
        if not self.email_url:
            raise click.ClickException("No email endpoint configured (--email-url)")
        payload = {"subject": "New Image Uploaded", "message": notification_html(image_url, description)}
        return self._post(self.email_url, payload)["messageId"]


def _encrypt(password: str, key: str) -> str:
    try:
        return PasswordCipher.from_base64(key).encrypt(password)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--key") from e


@click.group()
def cli() -> None:
    """Photo uploader client."""


@cli.command("generate-key")
def generate_key_cmd() -> None:
    """Print a new base64 ENCRYPTION_KEY."""
    click.echo(generate_key())


@cli.command("encrypt-password")
@click.option("--password", envvar="PHOTO_UPLOADER_PASSWORD", prompt=True, hide_input=True)
@click.option("--key", envvar="PHOTO_UPLOADER_KEY", required=True, help="base64 ENCRYPTION_KEY")
def encrypt_password(password: str, key: str) -> None:
    """Print the credential the API expects for PASSWORD."""
    click.echo(_encrypt(password, key))


@cli.command()
@click.option("--api-url", envvar="PHOTO_UPLOADER_API_URL", required=True)
def version(api_url: str) -> None:
    """Print the server version."""
    click.echo(UploaderClient(api_url).version())


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-d", "--description", default=None)
@click.option("--notify/--no-notify", default=False, help="Send the notification email")
@click.option("--api-url", envvar="PHOTO_UPLOADER_API_URL", required=True)
@click.option("--email-url", envvar="PHOTO_UPLOADER_EMAIL_URL", default=None)
@click.option("--password", envvar="PHOTO_UPLOADER_PASSWORD", prompt=True, hide_input=True)
@click.option("--key", envvar="PHOTO_UPLOADER_KEY", required=True, help="base64 ENCRYPTION_KEY")
def upload(path: Path, description: str | None, notify: bool, api_url: str, email_url: str | None,
           password: str, key: str) -> None:
    """Upload an image and print its URL."""
    content_type, _ = mimetypes.guess_type(path.name)
    if not content_type or not content_type.startswith("image/"):
        raise click.BadParameter("Please select an image file", param_hint="PATH")

    client = UploaderClient(api_url, email_url, credential=_encrypt(password, key))
    object_key = build_object_key(path.name)

    click.echo("Getting presigned URL...")
    upload_url = client.presigned_url(object_key, "put_object", description)

    click.echo("Uploading file...")
    client.put_file(upload_url, path.read_bytes(), content_type)

    view_url = client.presigned_url(object_key, "get_object")

    if notify:
        click.echo("Sending email notification...")
        client.send_notification(view_url, description)

    click.echo(view_url)


if __name__ == "__main__":
    cli()
