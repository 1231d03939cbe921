"""Exception taxonomy for fluent-request.

Every error raised by a request execution derives from FluentRequestError.
Underlying causes are always chained (``raise ... from exc``) so callers can
inspect them through ``__cause__`` or the ``cause`` property.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fluent_request.models import ResponseMeta


class FluentRequestError(Exception):
    """Base class for request errors.

    ``meta`` is set when a response (live or mocked) was received before the
    failure, so status and headers stay inspectable.
    """

    def __init__(self, message: str, meta: ResponseMeta | None = None) -> None:
        super().__init__(message)
        self.meta = meta

    @property
    def cause(self) -> BaseException | None:
        return self.__cause__


class ConfigurationError(FluentRequestError):
    """Raised when the request cannot be assembled or its transport cannot be built.

    Examples: both a raw body and post data are set, a serializer failed, or
    the TLS certificate/key pair cannot be loaded. Always raised before any
    network activity.
    """


class TransportError(FluentRequestError):
    """Raised when the round trip fails (dial, TLS handshake, timeout, read)."""


class DecodeError(FluentRequestError):
    """Raised when a response body cannot be deserialized."""


class HandlerError(FluentRequestError):
    """Raised when a caller-registered hook or mock handler raises."""
