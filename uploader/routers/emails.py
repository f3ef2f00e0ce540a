import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from uploader.config import Settings
from uploader.dependencies import get_email_service, get_settings
from uploader.errors import ClientInputError, DependencyError
from uploader.models import EmailRequest, EmailResponse
from uploader.responses import cors_response, preflight_response, read_json_body
from uploader.services import EmailService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["emails"])

MISSING_FIELDS = "Missing required fields: to, subject, and message are required"


@router.options("/emails")
async def emails_preflight():
    return preflight_response()


@router.post("/emails")
async def send_email(
    request: Request,
    settings: Settings = Depends(get_settings),
    mailer: EmailService = Depends(get_email_service),
):
    payload = await read_json_body(request)
    try:
        body = EmailRequest.model_validate(payload)
    except ValidationError as e:
        raise ClientInputError("Invalid request body", details=str(e)) from e

    recipients = body.recipients or ([settings.DEFAULT_TO_EMAIL] if settings.DEFAULT_TO_EMAIL else [])
    if not recipients or not body.subject or not body.message:
        raise ClientInputError(MISSING_FIELDS)

    try:
        message_id = await mailer.send_email(body.sender, recipients, body.subject, body.message)
    except DependencyError:
        raise
    except Exception as e:
        logger.exception("Error sending email")
        raise DependencyError("Failed to send email", details=str(e)) from e

    return cors_response(200, EmailResponse(message="Email sent successfully",
                                            message_id=message_id).model_dump(by_alias=True))
