"""
Data Models Module

This module defines Pydantic models for request/response validation
and data serialization throughout the proxy.

Models are organized by functional area:
- Invocation models (inbound request, normalized result)
- Intent models (raw provider payload, fetch, summarize)
- Upstream models (provider payload, endpoint, retry state)
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


# ============================================================================
# Invocation Models
# ============================================================================

class InvocationRequest(BaseModel):
    """Normalized inbound request handed over by the host."""
    method: str = Field(..., description="HTTP method of the inbound request")
    body: Optional[Union[str, bytes]] = Field(None, description="Raw request body, expected to be JSON")

    @field_validator("method")
    @classmethod
    def normalize_method(cls, v: str) -> str:
        return v.strip().upper()


class NormalizedResult(BaseModel):
    """The sole artifact returned to the caller: status code plus JSON body."""
    status_code: int = Field(..., description="HTTP status code for the caller")
    body: Any = Field(..., description="Upstream JSON on success, or an error object")
    headers: Dict[str, str] = Field(
        default_factory=lambda: {"Content-Type": "application/json"},
        description="Response headers",
    )


# ============================================================================
# Intent Models
# ============================================================================

class RawPayloadIntent(BaseModel):
    """Pre-built provider payload supplied by the caller."""
    model_config = ConfigDict(extra="allow")

    contents: List[Any] = Field(..., min_length=1, description="Provider contents array")
    systemInstruction: Optional[Dict[str, Any]] = None
    tools: Optional[List[Dict[str, Any]]] = None


class FetchIntent(BaseModel):
    """Request for the current top finance and business stories."""
    type: Literal["fetch"]


class SummarizeIntent(BaseModel):
    """Request to condense caller-supplied text."""
    type: Literal["summarize"]
    textToSummarize: str = Field(..., description="Text forwarded verbatim as the user query")

    @field_validator("textToSummarize")
    @classmethod
    def validate_text(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("textToSummarize cannot be empty or only whitespace")
        return v


TypedIntent = Annotated[Union[FetchIntent, SummarizeIntent], Field(discriminator="type")]

Intent = Union[RawPayloadIntent, FetchIntent, SummarizeIntent]


# ============================================================================
# Upstream Models
# ============================================================================

class ProviderPayload(BaseModel):
    """Wire body sent to generateContent. Built fresh per call and never mutated."""
    model_config = ConfigDict(extra="allow", frozen=True)

    contents: List[Any]
    systemInstruction: Optional[Dict[str, Any]] = None
    tools: Optional[List[Dict[str, Any]]] = None

    def to_wire(self) -> Dict[str, Any]:
        """Serialize for the outbound request, omitting absent optional fields."""
        return self.model_dump(exclude_none=True)


class UpstreamEndpoint(BaseModel):
    """generateContent endpoint with the injected credential."""
    model_config = ConfigDict(frozen=True)

    host: str
    version: str
    model: str
    api_key: SecretStr

    @property
    def base_url(self) -> str:
        return f"https://{self.host}/{self.version}/models/{self.model}:generateContent"

    @property
    def url(self) -> str:
        """Full URL including the credential. Only for the outbound request."""
        return f"{self.base_url}?{urlencode({'key': self.api_key.get_secret_value()})}"

    @property
    def redacted_url(self) -> str:
        return f"{self.base_url}?key=***"

    @property
    def secret(self) -> str:
        return self.api_key.get_secret_value()


class RetryState(BaseModel):
    """Per-invocation dispatch loop state. Never shared or persisted."""
    attempt: int = Field(default=0, ge=0, description="0-based index of the current attempt")
    max_retries: int = Field(..., ge=1, description="Total number of attempts allowed")
    last_error: Optional[str] = Field(None, description="Message of the most recent failure")

    @property
    def attempts_made(self) -> int:
        return self.attempt + 1

    @property
    def has_attempts_remaining(self) -> bool:
        return self.attempt < self.max_retries - 1
