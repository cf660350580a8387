"""
Request Translator
==================

Maps an inbound invocation into a generateContent payload.

The intent is resolved exactly once here (raw payload, ``fetch`` or
``summarize``); the dispatcher only ever sees a ProviderPayload.
"""

import copy
import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..errors import MethodNotAllowedError, ValidationError
from ..models import (
    FetchIntent,
    Intent,
    InvocationRequest,
    ProviderPayload,
    RawPayloadIntent,
    SummarizeIntent,
    TypedIntent,
)

logger = logging.getLogger(__name__)


FETCH_USER_QUERY = "What are the top 5 current finance and business news stories?"

FETCH_SYSTEM_INSTRUCTION = (
    "Act as a concise news aggregator. Provide the title and full body of the top 5 "
    "finance stories. Format the output as clean markdown, separating each story "
    "clearly using titles and paragraphs."
)

SUMMARIZE_SYSTEM_INSTRUCTION = (
    "You are a highly efficient editor. Condense the provided financial news content "
    "into a single, cohesive, jargon-free paragraph. The summary must be 60 words or "
    "less. Do not use a title, introduction, or citation placeholders."
)

SEARCH_TOOL_NAME = "google_search"

_typed_intent_adapter = TypeAdapter(TypedIntent)


def _text_parts(text: str) -> Dict[str, Any]:
    return {"parts": [{"text": text}]}


def search_tools() -> List[Dict[str, Any]]:
    """Tool list enabling real-time search grounding."""
    return [{SEARCH_TOOL_NAME: {}}]


def _first_error(exc: PydanticValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()) if part not in ("fetch", "summarize"))
    message = error.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


# ============================================================================
# Body Parsing
# ============================================================================

def parse_body(body: Optional[Any]) -> Dict[str, Any]:
    """
    Decode the raw invocation body into a JSON object.

    An absent or empty body decodes to ``{}`` so that it fails intent
    resolution rather than JSON parsing.

    Raises:
        ValidationError: If the body is not valid JSON or not a JSON object
    """
    if body is None:
        return {}

    if isinstance(body, (bytes, bytearray)):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError:
            raise ValidationError("Request body must be UTF-8 encoded JSON.")

    if not body.strip():
        return {}

    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        raise ValidationError("Request body is not valid JSON.")

    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")

    return data


def parse_intent(data: Dict[str, Any]) -> Intent:
    """
    Resolve a decoded body into exactly one recognized intent shape.

    Raises:
        ValidationError: If no shape matches, or both a raw payload and a
            typed intent are present
    """
    has_contents = "contents" in data
    has_type = "type" in data

    if has_contents and has_type:
        raise ValidationError("Ambiguous request: provide either 'contents' or 'type', not both.")

    if has_contents:
        try:
            return RawPayloadIntent.model_validate(data)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid raw payload: {_first_error(exc)}")

    if not has_type:
        raise ValidationError("Invalid API type specified.")

    if data.get("type") not in ("fetch", "summarize"):
        raise ValidationError("Invalid API type specified.")

    try:
        return _typed_intent_adapter.validate_python(data)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid '{data['type']}' request: {_first_error(exc)}")


# ============================================================================
# Payload Construction
# ============================================================================

def build_payload(intent: Intent) -> ProviderPayload:
    """
    Produce the provider payload for an intent.

    Pure: the same intent always yields a structurally identical payload.
    Only ``fetch`` attaches tools; a raw payload keeps whatever it carried.
    """
    if isinstance(intent, FetchIntent):
        return ProviderPayload(
            contents=[_text_parts(FETCH_USER_QUERY)],
            systemInstruction=_text_parts(FETCH_SYSTEM_INSTRUCTION),
            tools=search_tools(),
        )

    if isinstance(intent, SummarizeIntent):
        return ProviderPayload(
            contents=[_text_parts(intent.textToSummarize)],
            systemInstruction=_text_parts(SUMMARIZE_SYSTEM_INSTRUCTION),
        )

    if isinstance(intent, RawPayloadIntent):
        return ProviderPayload.model_validate(copy.deepcopy(intent.model_dump(exclude_none=True)))

    raise ValidationError("Invalid API type specified.")


def ensure_post(request: InvocationRequest) -> None:
    if request.method != "POST":
        raise MethodNotAllowedError(f"Method {request.method} not allowed. Use POST.")


def translate(request: InvocationRequest) -> ProviderPayload:
    """
    Validate an invocation and build its provider payload.

    Raises:
        MethodNotAllowedError: If the method is not POST
        ValidationError: If the body or intent is invalid
    """
    ensure_post(request)

    intent = parse_intent(parse_body(request.body))
    payload = build_payload(intent)

    logger.debug(
        "Translated invocation",
        extra={
            "intent": getattr(intent, "type", "raw"),
            "has_tools": payload.tools is not None,
        }
    )
    return payload
