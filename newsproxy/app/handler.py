"""
Invocation entry point.

``handle_invocation`` is the single function the host calls: it takes a
normalized InvocationRequest and always returns a NormalizedResult.
"""

import logging
from typing import Optional

import httpx

from .config import Settings
from .errors import ProxyError
from .gemini.dispatcher import GeminiDispatcher, Sleep
from .gemini.translator import ensure_post, translate
from .models import InvocationRequest, NormalizedResult

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "Internal server error during API proxy."


def error_result(error: ProxyError) -> NormalizedResult:
    result = NormalizedResult(status_code=error.status_code, body=error.to_body())
    if error.status_code == 405:
        result.headers["Allow"] = "POST"
    return result


async def handle_invocation(
    request: InvocationRequest,
    settings: Settings,
    client: httpx.AsyncClient,
    sleep: Optional[Sleep] = None,
) -> NormalizedResult:
    """
    Handle one invocation end to end.

    Checks run in order: method (405), credential (500), body and intent
    (400). Only then is the upstream contacted (200 or 502).

    Args:
        request: Normalized inbound request
        settings: Read-only configuration
        client: Shared HTTP client for outbound calls
        sleep: Optional awaitable sleep used for backoff waits

    Returns:
        NormalizedResult for the caller. Never raises.
    """
    try:
        ensure_post(request)

        endpoint = settings.upstream_endpoint()
        payload = translate(request)

        dispatcher = GeminiDispatcher.from_settings(client, settings, sleep=sleep)
        return await dispatcher.dispatch(payload, endpoint)

    except ProxyError as e:
        log = logger.error if e.status_code >= 500 else logger.warning
        log(
            f"Invocation rejected: {e.message}",
            extra={"status_code": e.status_code, "method": request.method}
        )
        return error_result(e)

    except Exception as e:
        logger.error(
            f"Unexpected error while handling invocation: {type(e).__name__}",
            exc_info=True,
            extra={"method": request.method}
        )
        return NormalizedResult(status_code=500, body={"error": INTERNAL_ERROR})
