import json
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from uploader.errors import ClientInputError

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, X-Amz-Date, Authorization, X-Api-Key, X-Amz-Security-Token",
}


def cors_response(status_code: int, body: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body, headers=CORS_HEADERS)


def preflight_response() -> JSONResponse:
    return cors_response(200, {"message": "CORS preflight"})


async def read_json_body(request: Request) -> dict:
    """Decode the request body as a JSON object or raise a 400."""
    raw = await request.body()
    try:
        payload = json.loads(raw or b"{}")
    except ValueError as e:
        raise ClientInputError("Invalid JSON in request body", details=str(e)) from e
    if not isinstance(payload, dict):
        raise ClientInputError("Invalid request body", details="Expected a JSON object")
    return payload
