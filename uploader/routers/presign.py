import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from uploader.config import Settings
from uploader.dependencies import get_db_service, get_settings, get_storage_service
from uploader.errors import AuthorizationError, ClientInputError, DependencyError, UploaderError
from uploader.models import Operation, PresignRequest, UploadRecord, UrlResponse, VersionResponse
from uploader.responses import cors_response, preflight_response, read_json_body
from uploader.security import InvalidCredential, PasswordCipher
from uploader.services import DatabaseService, StorageService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["presign"])

INVALID_OPERATION = "Invalid operation. Must be 'get_object', 'put_object', or 'get_version'."


def utc_timestamp() -> str:
    """ISO-8601 UTC with milliseconds and a Z suffix, e.g. 2024-01-01T00:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def authorize(password, settings: Settings) -> None:
    if not password:
        raise AuthorizationError("Unauthorized: Missing password")
    if not isinstance(password, str):
        raise AuthorizationError("Unauthorized: Failed to decrypt password")

    cipher = PasswordCipher.from_base64(settings.ENCRYPTION_KEY)
    try:
        matched = cipher.matches(password, settings.APP_PASSWORD)
    except InvalidCredential as e:
        logger.warning("Rejected request: credential failed to decrypt (%s)", e)
        raise AuthorizationError("Unauthorized: Failed to decrypt password") from e
    if not matched:
        logger.warning("Rejected request: password mismatch")
        raise AuthorizationError("Unauthorized: Invalid password")


@router.options("/presign-url")
async def presign_url_preflight():
    return preflight_response()


@router.post("/presign-url")
async def presign_url(
    request: Request,
    settings: Settings = Depends(get_settings),
    storage: StorageService = Depends(get_storage_service),
    db: DatabaseService = Depends(get_db_service),
):
    payload = await read_json_body(request)

    # version and password are read from the raw body; the remaining fields
    # are only type-checked once the caller is authorized
    requested = payload.get("operation") or Operation.GET_OBJECT.value
    logger.info("presign-url operation=%s key=%s", requested, payload.get("key"))

    if requested == Operation.GET_VERSION.value:
        return cors_response(200, VersionResponse(version=settings.FUNCTION_VERSION).model_dump())

    try:
        authorize(payload.get("password"), settings)

        try:
            body = PresignRequest.model_validate(payload)
        except ValidationError as e:
            raise ClientInputError("Invalid request body", details=str(e)) from e

        if not body.key:
            raise ClientInputError("Missing 'key' parameter")

        try:
            operation = Operation(requested)
        except ValueError:
            raise ClientInputError(INVALID_OPERATION) from None

        if operation is Operation.GET_OBJECT:
            url = storage.object_url(body.key)
        elif operation is Operation.PUT_OBJECT:
            url = await storage.generate_upload_url(body.key)
            if body.description is not None:
                record = UploadRecord(
                    image_key=body.key,
                    description=body.description,
                    uploaded_at=utc_timestamp(),
                    image_url=storage.object_url(body.key),
                )
                await db.save_upload_record(record)
        else:
            raise ClientInputError(INVALID_OPERATION)
    except UploaderError:
        raise
    except Exception as e:
        logger.exception("Error generating URL for %s", payload.get("key"))
        raise DependencyError("Internal Server Error", details=str(e)) from e

    return cors_response(200, UrlResponse(url=url).model_dump())
