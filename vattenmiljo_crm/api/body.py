"""Raw JSON request bodies read after authorization has run.

Endpoints with their own error payloads take the body through `read_json_body`
instead of a typed pydantic parameter, so that session checks and the
endpoint's wire contract apply before any body validation.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from fastapi import Request

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JsonBody:
    fields: dict[str, Any] = field(default_factory=dict)
    malformed: bool = False


async def read_json_body(request: Request) -> JsonBody:
    """Parse the request body as a JSON object; an empty body is an empty object."""
    raw = await request.body()
    if not raw.strip():
        return JsonBody()
    try:
        value = json.loads(raw)
    except ValueError as exc:
        logger.info("Unparsable body on %s: %s", request.url.path, exc)
        return JsonBody(malformed=True)
    if not isinstance(value, dict):
        return JsonBody(malformed=True)
    return JsonBody(fields=value)
