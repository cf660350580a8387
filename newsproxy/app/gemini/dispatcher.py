"""
Resilient Dispatcher
====================

Sends a ProviderPayload to the generateContent endpoint and normalizes the
outcome into a NormalizedResult.

Retry Model:
------------
1. Every attempt is a single POST with a per-attempt timeout
2. A non-2xx status, a transport error or an undecodable 2xx body is a failure
3. Attempt n (0-based) that fails with attempts remaining waits
   ``base * 2**n`` seconds (capped) before attempt n + 1
4. Once attempts are exhausted the caller receives 502 with the last
   failure message in ``details``

Backoff waits are awaited, so one slow invocation never blocks another
sharing the same event loop. The credential is scrubbed from every message
that can reach a log record or a response body.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from ..errors import UpstreamLogicError, UpstreamTransientError, redact_secret
from ..log_redaction import install_redaction_filter
from ..models import NormalizedResult, ProviderPayload, RetryState, UpstreamEndpoint

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

EXHAUSTED_ERROR = "External API call failed after retries."

RETRY_POLICIES = ("uniform", "forward_status")

install_redaction_filter()


class GeminiDispatcher:
    """
    Dispatch loop for one upstream call with bounded exponential backoff.

    The dispatcher holds only read-only configuration; each call to
    ``dispatch`` owns its own RetryState, so one instance can serve
    concurrent invocations.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        backoff_max: float = 30.0,
        timeout: Optional[httpx.Timeout] = None,
        retry_policy: str = "uniform",
        sleep: Optional[Sleep] = None,
    ):
        """
        Initialize GeminiDispatcher.

        Args:
            client: Shared HTTP client used for outbound calls
            max_retries: Total number of attempts (first try included)
            backoff_base: Delay before the first retry, doubled per retry
            backoff_max: Upper bound for any single delay
            timeout: Per-attempt timeout (defaults to 30s total, 10s connect)
            retry_policy: 'uniform' or 'forward_status'
            sleep: Awaitable sleep, defaults to asyncio.sleep
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if retry_policy not in RETRY_POLICIES:
            raise ValueError(f"retry_policy must be one of {RETRY_POLICIES}, got: {retry_policy}")

        self._client = client
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.timeout = timeout or httpx.Timeout(30.0, connect=10.0)
        self.retry_policy = retry_policy
        self._sleep = sleep or asyncio.sleep

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient, settings, sleep: Optional[Sleep] = None) -> "GeminiDispatcher":
        return cls(
            client,
            max_retries=settings.MAX_RETRIES,
            backoff_base=settings.BACKOFF_BASE_SECONDS,
            backoff_max=settings.BACKOFF_MAX_SECONDS,
            timeout=httpx.Timeout(
                settings.UPSTREAM_TIMEOUT_SECONDS,
                connect=settings.UPSTREAM_CONNECT_TIMEOUT_SECONDS,
            ),
            retry_policy=settings.RETRY_POLICY,
            sleep=sleep,
        )

    def backoff_delay(self, attempt: int) -> float:
        """Delay to wait after failed attempt ``attempt`` (0-based)."""
        return min(self.backoff_base * (2 ** attempt), self.backoff_max)

    async def _send(self, payload: ProviderPayload, endpoint: UpstreamEndpoint) -> Any:
        """
        Perform one attempt.

        Returns:
            Parsed upstream JSON on a 2xx response

        Raises:
            UpstreamTransientError: Non-2xx status or transport failure
            UpstreamLogicError: 2xx response whose body is not JSON
        """
        try:
            response = await self._client.post(
                endpoint.url,
                json=payload.to_wire(),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise UpstreamTransientError(
                redact_secret(f"Upstream request timed out: {e}", endpoint.secret)
            )
        except httpx.HTTPError as e:
            raise UpstreamTransientError(
                redact_secret(f"Upstream transport error: {type(e).__name__}: {e}", endpoint.secret)
            )

        if not 200 <= response.status_code < 300:
            raise UpstreamTransientError(
                f"External API call failed: {response.status_code}",
                upstream_status=response.status_code,
                details=_error_body(response, endpoint.secret),
            )

        try:
            return response.json()
        except ValueError:
            raise UpstreamLogicError(
                f"Upstream returned a non-JSON body with status {response.status_code}",
                upstream_status=response.status_code,
            )

    async def dispatch(self, payload: ProviderPayload, endpoint: UpstreamEndpoint) -> NormalizedResult:
        """
        Send ``payload`` with retries and normalize the outcome.

        Never raises for upstream failures; every path ends in a
        NormalizedResult.
        """
        state = RetryState(max_retries=self.max_retries)

        while True:
            try:
                body = await self._send(payload, endpoint)
            except UpstreamTransientError as e:
                state.last_error = e.message

                if (
                    self.retry_policy == "forward_status"
                    and e.upstream_status is not None
                    and not isinstance(e, UpstreamLogicError)
                ):
                    logger.warning(
                        f"Upstream error {e.upstream_status}, forwarding status without retry",
                        extra={"upstream_url": endpoint.redacted_url, "attempt": state.attempts_made}
                    )
                    return NormalizedResult(
                        status_code=e.upstream_status,
                        body={"error": e.message, "details": e.details},
                    )

                if state.has_attempts_remaining:
                    delay = self.backoff_delay(state.attempt)
                    logger.warning(
                        f"Upstream attempt {state.attempts_made}/{self.max_retries} failed, "
                        f"retrying after {delay}s: {e.message}",
                        extra={
                            "upstream_url": endpoint.redacted_url,
                            "upstream_status": e.upstream_status,
                        }
                    )
                    await self._sleep(delay)
                    state.attempt += 1
                    continue

                logger.error(
                    f"Upstream call failed after {state.attempts_made} attempts: {e.message}",
                    extra={
                        "upstream_url": endpoint.redacted_url,
                        "upstream_status": e.upstream_status,
                    }
                )
                return NormalizedResult(
                    status_code=502,
                    body={"error": EXHAUSTED_ERROR, "details": state.last_error},
                )

            logger.info(
                "Upstream call succeeded",
                extra={"attempts": state.attempts_made, "upstream_url": endpoint.redacted_url}
            )
            return NormalizedResult(status_code=200, body=body)


def _error_body(response: httpx.Response, secret: str) -> Optional[Dict[str, Any]]:
    """Best-effort decode of an upstream error body, scrubbed of the credential."""
    try:
        data = response.json()
    except ValueError:
        text = response.text or ""
        return {"message": redact_secret(text[:500], secret)} if text else None

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            return {
                key: redact_secret(value, secret) if isinstance(value, str) else value
                for key, value in error.items()
                if key in ("code", "message", "status")
            }
    return {"message": redact_secret(str(data)[:500], secret)}
