"""
Proxy Routes - Upstream Request Forwarding
==========================================

This module exposes the invocation entry point over HTTP.

Security Model:
---------------
1. Clients never send or receive the Gemini API key
2. The key is read from server configuration and injected into the
   outbound URL only
3. Inbound headers are not forwarded upstream
4. Error bodies never include the key or a stack trace

Endpoints:
----------
- /api/get-news: Fetch or summarize finance news (POST only)
- /.netlify/functions/get-news: Same handler under the legacy function path
"""

import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from ..config import Settings, get_settings
from ..handler import handle_invocation
from ..models import InvocationRequest

logger = logging.getLogger(__name__)

# Create router
proxy_router = APIRouter()

# Every method is routed so non-POST requests get the entry point's 405 body
ROUTED_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE"]


# ============================================================================
# Dependencies
# ============================================================================

def get_upstream_client(request: Request) -> httpx.AsyncClient:
    """
    Dependency to get the shared upstream HTTP client from app state.

    Raises:
        HTTPException: If the client was not initialized by the lifespan
    """
    if not hasattr(request.app.state, "app_state"):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Upstream client not initialized"
        )

    client = request.app.state.app_state.upstream_client
    if not client:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Upstream client not available"
        )

    return client


# ============================================================================
# Proxy Endpoints
# ============================================================================

@proxy_router.api_route("/api/get-news", methods=ROUTED_METHODS)
@proxy_router.api_route("/.netlify/functions/get-news", methods=ROUTED_METHODS, include_in_schema=False)
async def get_news(
    request: Request,
    settings: Settings = Depends(get_settings),
    upstream_client: httpx.AsyncClient = Depends(get_upstream_client),
) -> JSONResponse:
    """
    Forward a fetch or summarize request to the upstream model.

    Flow:
    1. Normalize the HTTP request into an InvocationRequest
    2. Hand it to handle_invocation (validation, key injection, retries)
    3. Return the NormalizedResult status and JSON body unchanged

    Body shapes:
        {"type": "fetch"}
        {"type": "summarize", "textToSummarize": "..."}
        {"contents": [...], "systemInstruction": {...}, "tools": [...]}
    """
    invocation = InvocationRequest(
        method=request.method,
        body=await request.body(),
    )

    logger.info(
        "Proxying invocation",
        extra={"method": invocation.method, "path": request.url.path}
    )

    result = await handle_invocation(invocation, settings, upstream_client)

    return JSONResponse(
        status_code=result.status_code,
        content=result.body,
        headers={k: v for k, v in result.headers.items() if k.lower() != "content-type"},
    )
