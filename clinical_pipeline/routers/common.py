"""Helpers shared by the routers."""

import json
from typing import Any

from fastapi import Request

from clinical_pipeline.errors import EnvelopeValidationError


async def read_body(request: Request) -> bytes:
    """
    Read the raw request body, enforcing the configured size limit.

    Raises:
        EnvelopeValidationError: body too large
    """
    settings = request.app.state.settings
    body = await request.body()

    if len(body) > settings.max_body_bytes:
        raise EnvelopeValidationError(
            "Request body too large",
            [{"msg": f"Body exceeds {settings.max_body_mb} MB", "size": len(body)}],
        )
    return body


async def read_json_body(request: Request) -> Any:
    """
    Read and decode a JSON request body.

    Raises:
        EnvelopeValidationError: body too large or not valid JSON
    """
    body = await read_body(request)

    if not body:
        raise EnvelopeValidationError("Request body is empty", [{"msg": "Empty body"}])

    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise EnvelopeValidationError("Request body is not valid JSON", [{"msg": str(e)}]) from e
