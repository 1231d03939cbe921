"""Data models for fluent-request.

All models use Pydantic v2. Response metadata is frozen: a corrected copy is
produced with model_copy() once the real body length is known.
"""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import Any, Callable, Iterable

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Logging Levels
# =============================================================================


class LogLevel(IntEnum):
    """Log level filter for a request.

    A message is written only when a logger is configured and the message
    level is less than or equal to the request's level.
    """

    ERRORS = 1
    VERBOSE = 2
    DEBUG = 3
    EVERYTHING = 9001

    @property
    def logging_level(self) -> int:
        """Equivalent standard library logging level."""
        if self is LogLevel.ERRORS:
            return logging.ERROR
        if self is LogLevel.VERBOSE:
            return logging.INFO
        return logging.DEBUG

    @classmethod
    def parse(cls, value: str | int | LogLevel) -> LogLevel:
        """Accept a LogLevel, its integer value, or its name (case-insensitive)."""
        if isinstance(value, LogLevel):
            return value
        if isinstance(value, int):
            return cls(value)
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(
                f"Unknown log level '{value}'. Expected one of: "
                f"{', '.join(level.name.lower() for level in cls)}"
            ) from None


# =============================================================================
# Request / Response Metadata
# =============================================================================


class Cookie(BaseModel):
    """A cookie sent with the request."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(description="Cookie name")
    value: str = Field(default="", description="Cookie value")

    def header_fragment(self) -> str:
        return f"{self.name}={self.value}"


class RequestMeta(BaseModel):
    """Snapshot of an outgoing request, handed to the pre-request hook."""

    model_config = ConfigDict(extra="forbid")

    verb: str = Field(description="HTTP method (GET, POST, etc.)")
    url: str = Field(description="Fully assembled target URL")
    headers: dict[str, list[str]] = Field(
        default_factory=dict, description="Merged request headers (arrays for repeated headers)"
    )
    body: bytes | None = Field(default=None, description="Request body, if any")


class ResponseMeta(BaseModel):
    """Decode-independent summary of an HTTP response.

    Header keys are lowercase. Header values are arrays for repeated headers.
    content_length starts as the declared Content-Length (-1 when unknown) and
    is replaced by the actual byte count once the body has been read.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    status_code: int = Field(default=0, description="HTTP status code")
    content_length: int = Field(default=-1, description="Body length in bytes")
    content_type: str = Field(default="", description="Content-Type, multiple values joined with ';'")
    content_encoding: str = Field(
        default="", description="Content-Encoding, multiple values joined with ';'"
    )
    headers: dict[str, list[str]] = Field(
        default_factory=dict, description="Response headers (lowercase keys, array values)"
    )

    @field_validator("headers", mode="before")
    @classmethod
    def normalize_headers(cls, value: Any) -> Any:
        """Accept plain str values and mixed-case keys (mock handlers build these by hand)."""
        if not isinstance(value, dict):
            return value
        headers: dict[str, list[str]] = {}
        for key, values in value.items():
            if isinstance(values, str):
                values = [values]
            headers.setdefault(str(key).lower(), []).extend(values)
        return headers

    @classmethod
    def from_response(cls, response: httpx.Response | None) -> ResponseMeta:
        """Extract metadata from a live or synthesized response."""
        if response is None:
            return cls()
        return cls.from_headers(response.status_code, response.headers.multi_items())

    @classmethod
    def from_headers(cls, status_code: int, items: Iterable[tuple[str, str]]) -> ResponseMeta:
        """Extract metadata from a status code and raw header pairs."""
        headers: dict[str, list[str]] = {}
        for key, value in items:
            headers.setdefault(key.lower(), []).append(value)

        content_length = -1
        declared = headers.get("content-length")
        if declared:
            try:
                content_length = int(declared[0])
            except ValueError:
                content_length = -1

        return cls(
            status_code=status_code,
            content_length=content_length,
            content_type=";".join(headers.get("content-type", [])),
            content_encoding=";".join(headers.get("content-encoding", [])),
            headers=headers,
        )

    def with_content_length(self, content_length: int) -> ResponseMeta:
        return self.model_copy(update={"content_length": content_length})

    @property
    def is_ok(self) -> bool:
        return self.status_code == httpx.codes.OK


class MockedResponse(BaseModel):
    """What a mock handler returns when it matches a request.

    The executor synthesizes a response from ``meta`` and ``body`` without
    opening a socket. If ``error`` is set, the execution fails with it as the
    cause, with the synthesized metadata attached.
    """

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    meta: ResponseMeta | None = Field(default=None, description="Status and headers to report")
    body: bytes = Field(default=b"", description="Response body")
    error: BaseException | None = Field(default=None, description="Error to surface, if any")


# Hook signatures (all optional on a request; absent hooks are never invoked)
OutgoingRequestHandler = Callable[[RequestMeta], None]
ResponseHandler = Callable[[ResponseMeta, bytes], None]
CreateTransportHandler = Callable[[httpx.URL, Any], None]
MockedResponseHandler = Callable[[str, httpx.URL], MockedResponse | None]


# =============================================================================
# Request Profiles (configuration file)
# =============================================================================


class BasicAuthConfig(BaseModel):
    """Basic auth credentials."""

    model_config = ConfigDict(extra="forbid")

    username: str = Field(description="Username (supports ${ENV_VAR} substitution)")
    password: str = Field(default="", description="Password (supports ${ENV_VAR} substitution)")


class TLSConfig(BaseModel):
    """Client certificate for mutual TLS."""

    model_config = ConfigDict(extra="forbid")

    cert: str = Field(description="Path to the PEM client certificate")
    key: str = Field(description="Path to the PEM private key")


class RequestProfile(BaseModel):
    """Reusable request settings loaded from a profiles file."""

    model_config = ConfigDict(extra="forbid")

    url: str | None = Field(default=None, description="Full target URL")
    verb: str | None = Field(default=None, description="HTTP method")
    headers: dict[str, str] = Field(default_factory=dict, description="Headers to set")
    query: dict[str, list[str]] = Field(
        default_factory=dict, description="Query parameters (arrays for repeated params)"
    )
    content_type: str | None = Field(default=None, description="Content-Type override")
    timeout: float | None = Field(default=None, gt=0, description="Timeout in seconds")
    keep_alive: bool = Field(default=False, description="Enable keep-alive dialing")
    tls: TLSConfig | None = Field(default=None, description="Client certificate settings")
    basic_auth: BasicAuthConfig | None = Field(default=None, description="Basic auth credentials")
    label: str | None = Field(default=None, description="Logging label")
    log_level: LogLevel | None = Field(default=None, description="Log level filter")

    @field_validator("query", mode="before")
    @classmethod
    def wrap_scalar_query_values(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {
                k: [str(item) for item in v] if isinstance(v, list) else [str(v)]
                for k, v in value.items()
            }
        return value

    @field_validator("headers", mode="before")
    @classmethod
    def stringify_header_values(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: str(v) for k, v in value.items()}
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def parse_log_level(cls, value: Any) -> Any:
        if value is None:
            return None
        return LogLevel.parse(value)


class ProfilesFile(BaseModel):
    """Top-level profiles file structure."""

    model_config = ConfigDict(extra="forbid")

    profiles: dict[str, RequestProfile] = Field(description="Profile name -> settings mapping")
