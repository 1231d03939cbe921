"""HTTPRequest - fluent configuration for one outbound HTTP request.

Every configuration method mutates a single concern and returns the same
instance, so calls chain:

    meta = (
        HTTPRequest()
        .as_post()
        .with_url("https://hooks.example.com/services/abc")
        .with_json_body({"text": "hello"})
        .with_timeout(5)
        .execute_with_meta()
    )

Cross-field rules (body vs. post data, serializer failures) are checked when
the request is assembled, never at configuration time.
"""

from __future__ import annotations

import base64
import json
import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from fluent_request.codec import (
    FORM_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    XML_CONTENT_TYPE,
    Deserializer,
    Serializer,
    serialize_json,
    serialize_xml,
)
from fluent_request.errors import ConfigurationError
from fluent_request.models import (
    Cookie,
    CreateTransportHandler,
    LogLevel,
    MockedResponseHandler,
    OutgoingRequestHandler,
    RequestMeta,
    RequestProfile,
    ResponseHandler,
    ResponseMeta,
)
from fluent_request.url import combine_path_components, create_url, encode_values, split_url

if TYPE_CHECKING:
    from fluent_request.executor import Executor

DEFAULT_SCHEME = "http"
DEFAULT_VERB = "GET"
PACKAGE_LOGGER = "fluent_request"


class HTTPRequest:
    """Accumulated configuration for one logical HTTP request.

    An instance may be executed more than once, but headers, cookies, query
    values and post data accumulate across reuse. Instances are not
    thread-safe: all mutation happens in place without locking, so one
    instance must not be configured or executed from several threads at once.
    """

    def __init__(self) -> None:
        self.scheme: str = DEFAULT_SCHEME
        self.host: str = ""
        self.path: str = ""
        self.query_string: dict[str, list[str]] = {}
        self.header: httpx.Headers = httpx.Headers()
        self.post_data: dict[str, list[str]] = {}
        self.cookies: list[Cookie] = []
        self.basic_auth_username: str = ""
        self.basic_auth_password: str = ""
        self.verb: str = DEFAULT_VERB
        self.content_type: str = ""
        self.timeout: float | None = None
        self.tls_cert_path: str = ""
        self.tls_key_path: str = ""
        self.body: bytes | None = None
        self.keep_alive: bool = False

        self.label: str = ""
        self.logger: logging.Logger | None = None
        self.log_level: LogLevel | None = None

        self.transport: httpx.BaseTransport | None = None
        self.create_transport_handler: CreateTransportHandler | None = None
        self.response_handler: ResponseHandler | None = None
        self.request_handler: OutgoingRequestHandler | None = None
        self.mock_handler: MockedResponseHandler | None = None

        self._body_error: Exception | None = None

    def __repr__(self) -> str:
        return f"HTTPRequest({self.verb} {self.create_url()!r})"

    # -------------------------------------------------------------------------
    # Event hooks
    # -------------------------------------------------------------------------

    def on_response(self, hook: ResponseHandler | None) -> HTTPRequest:
        """Called with (meta, body) after a response body has been read."""
        self.response_handler = hook
        return self

    def on_create_transport(self, hook: CreateTransportHandler | None) -> HTTPRequest:
        """Called with (target url, transport) after a custom transport is built."""
        self.create_transport_handler = hook
        return self

    def on_request(self, hook: OutgoingRequestHandler | None) -> HTTPRequest:
        """Called with a RequestMeta snapshot before the request is sent."""
        self.request_handler = hook
        return self

    def with_mocked_response(self, handler: MockedResponseHandler | None) -> HTTPRequest:
        """Install a mock handler consulted before any network activity.

        The handler receives (verb, url) and returns a MockedResponse to
        short-circuit the call, or None to let it through.
        """
        self.mock_handler = handler
        return self

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------

    def with_label(self, label: str) -> HTTPRequest:
        self.label = label
        return self

    def with_logging(self) -> HTTPRequest:
        """Log errors to the package logger."""
        self.log_level = LogLevel.ERRORS
        self.logger = logging.getLogger(PACKAGE_LOGGER)
        return self

    def with_log_level(self, log_level: LogLevel | int | str) -> HTTPRequest:
        self.log_level = LogLevel.parse(log_level)
        return self

    def with_logger(self, log_level: LogLevel | int | str, logger: logging.Logger) -> HTTPRequest:
        self.log_level = LogLevel.parse(log_level)
        self.logger = logger
        return self

    def log(self, level: LogLevel, message: str, *args: Any) -> None:
        """Write a message if a logger is set and ``level`` passes the filter."""
        if self.logger is None or self.log_level is None or level > self.log_level:
            return
        label = f" [{self.label}]" if self.label else ""
        self.logger.log(level.logging_level, f"HttpRequest ({level.name}){label}: {message}", *args)

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def with_transport(self, transport: httpx.BaseTransport | None) -> HTTPRequest:
        """Use this transport verbatim instead of building one."""
        self.transport = transport
        return self

    def with_keep_alives(self) -> HTTPRequest:
        self.keep_alive = True
        return self.with_header("Connection", "keep-alive")

    def with_timeout(self, timeout: float | timedelta | None) -> HTTPRequest:
        """Bound dial, TLS handshake, header wait and body read. None means unbounded."""
        if isinstance(timeout, timedelta):
            timeout = timeout.total_seconds()
        self.timeout = timeout
        return self

    def with_tls_cert(self, cert_path: str) -> HTTPRequest:
        self.tls_cert_path = cert_path
        return self

    def with_tls_key(self, key_path: str) -> HTTPRequest:
        self.tls_key_path = key_path
        return self

    # -------------------------------------------------------------------------
    # Target
    # -------------------------------------------------------------------------

    def with_scheme(self, scheme: str) -> HTTPRequest:
        self.scheme = scheme
        return self

    def with_host(self, host: str) -> HTTPRequest:
        self.host = host
        return self

    def with_path(self, path: str) -> HTTPRequest:
        self.path = path
        return self

    def with_pathf(self, path_format: str, *args: Any) -> HTTPRequest:
        """Set the path from a printf-style format: ``with_pathf("/users/%d", 42)``."""
        self.path = path_format % args
        return self

    def with_combined_path(self, *components: str) -> HTTPRequest:
        self.path = combine_path_components(*components)
        return self

    def with_url(self, url: str) -> HTTPRequest:
        """Set scheme, host, path and query from a full URL string.

        Replaces any previously added query values.
        """
        self.scheme, self.host, self.path, self.query_string = split_url(url)
        return self

    def with_header(self, field: str, value: str) -> HTTPRequest:
        """Set a header, replacing any existing values for that field."""
        self.header[field] = value
        return self

    def with_query_string(self, field: str, value: str) -> HTTPRequest:
        """Add a query value. Repeated fields keep every value."""
        self.query_string.setdefault(field, []).append(value)
        return self

    def with_cookie(self, cookie: Cookie | tuple[str, str]) -> HTTPRequest:
        if isinstance(cookie, tuple):
            cookie = Cookie(name=cookie[0], value=cookie[1])
        self.cookies.append(cookie)
        return self

    # -------------------------------------------------------------------------
    # Body
    # -------------------------------------------------------------------------

    def with_post_data(self, field: str, value: str) -> HTTPRequest:
        """Add a form field. Repeated fields keep every value."""
        self.post_data.setdefault(field, []).append(value)
        return self

    def with_post_data_from_object(self, obj: Any) -> HTTPRequest:
        """Add one form field per top-level member of a mapping, model or dataclass.

        String members are sent as-is; everything else is JSON encoded. An
        object that does not decompose into a mapping is kept as a body error
        and raised as ConfigurationError when the request is assembled.
        """
        try:
            data = _form_fields(obj)
        except Exception as e:
            self._body_error = e
            return self

        for key, value in data.items():
            self.with_post_data(key, value)
        return self

    def with_basic_auth(self, username: str, password: str) -> HTTPRequest:
        self.basic_auth_username = username
        self.basic_auth_password = password
        return self

    def with_content_type(self, content_type: str) -> HTTPRequest:
        """Override the Content-Type header."""
        self.content_type = content_type
        return self

    def with_raw_body(self, body: bytes | None) -> HTTPRequest:
        self.body = body
        self._body_error = None
        return self

    def with_serialized_body(self, obj: Any, serializer: Serializer) -> HTTPRequest:
        """Set the body to ``serializer(obj)``.

        A serializer failure is kept and raised as ConfigurationError when the
        request is assembled.
        """
        try:
            body = serializer(obj)
        except Exception as e:
            self.body = None
            self._body_error = e
            return self
        return self.with_raw_body(body)

    def with_json_body(self, obj: Any) -> HTTPRequest:
        return self.with_serialized_body(obj, serialize_json).with_content_type(JSON_CONTENT_TYPE)

    def with_xml_body(self, obj: Any) -> HTTPRequest:
        return self.with_serialized_body(obj, serialize_xml).with_content_type(XML_CONTENT_TYPE)

    # -------------------------------------------------------------------------
    # Verbs
    # -------------------------------------------------------------------------

    def with_verb(self, verb: str) -> HTTPRequest:
        self.verb = verb
        return self

    def as_get(self) -> HTTPRequest:
        return self.with_verb("GET")

    def as_post(self) -> HTTPRequest:
        return self.with_verb("POST")

    def as_put(self) -> HTTPRequest:
        return self.with_verb("PUT")

    def as_patch(self) -> HTTPRequest:
        return self.with_verb("PATCH")

    def as_delete(self) -> HTTPRequest:
        return self.with_verb("DELETE")

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    def with_profile(self, profile: RequestProfile) -> HTTPRequest:
        """Apply every setting a profile defines. Unset profile fields are ignored."""
        if profile.url:
            self.with_url(profile.url)
        if profile.verb:
            self.with_verb(profile.verb.upper())
        for field, value in profile.headers.items():
            self.with_header(field, value)
        for field, values in profile.query.items():
            for value in values:
                self.with_query_string(field, value)
        if profile.content_type:
            self.with_content_type(profile.content_type)
        if profile.timeout is not None:
            self.with_timeout(profile.timeout)
        if profile.keep_alive:
            self.with_keep_alives()
        if profile.tls is not None:
            self.with_tls_cert(profile.tls.cert).with_tls_key(profile.tls.key)
        if profile.basic_auth is not None:
            self.with_basic_auth(profile.basic_auth.username, profile.basic_auth.password)
        if profile.label:
            self.with_label(profile.label)
        if profile.log_level is not None:
            self.with_log_level(profile.log_level)
        return self

    # -------------------------------------------------------------------------
    # Assembly
    # -------------------------------------------------------------------------

    def create_url(self) -> str:
        """The current target URL. Stable until the next mutation."""
        return create_url(self.scheme, self.host, self.path, self.query_string)

    def request_body(self) -> bytes | None:
        """The raw body if set, else the encoded post data, else None."""
        if self.body:
            return self.body
        if self.post_data:
            return encode_values(self.post_data).encode("ascii")
        return None

    def headers(self) -> httpx.Headers:
        """Explicit headers layered with the inferred Content-Type.

        Post data implies ``application/x-www-form-urlencoded``; an explicit
        content type wins over both. Fields are ordered by name.
        """
        merged: dict[str, list[str]] = {}
        for key, value in self.header.multi_items():
            merged.setdefault(key.lower(), []).append(value)
        if self.post_data:
            merged["content-type"] = [FORM_CONTENT_TYPE]
        if self.content_type:
            merged["content-type"] = [self.content_type]
        return httpx.Headers([(key, value) for key in sorted(merged) for value in merged[key]])

    def request_meta(self) -> RequestMeta:
        headers: dict[str, list[str]] = {}
        for key, value in self.headers().multi_items():
            headers.setdefault(key, []).append(value)
        return RequestMeta(
            verb=self.verb,
            url=self.create_url(),
            headers=headers,
            body=self.request_body(),
        )

    def create_http_request(self) -> httpx.Request:
        """Assemble the wire request.

        Raises:
            ConfigurationError: If both a raw body and post data are set, the
                body serializer failed, or the URL is invalid.
        """
        if self._body_error is not None:
            raise ConfigurationError(
                f"Cannot serialize request body: {self._body_error}"
            ) from self._body_error
        if self.body and self.post_data:
            raise ConfigurationError("Cannot set both a body and post data.")

        base: list[tuple[str, str]] = []
        if self.basic_auth_username:
            credentials = f"{self.basic_auth_username}:{self.basic_auth_password}".encode("utf-8")
            base.append(("authorization", "Basic " + base64.b64encode(credentials).decode("ascii")))
        if self.cookies:
            base.append(("cookie", "; ".join(cookie.header_fragment() for cookie in self.cookies)))

        merged = self.headers()
        explicit = set(merged.keys())
        headers = [(key, value) for key, value in base if key not in explicit]
        headers.extend(merged.multi_items())

        try:
            url = httpx.URL(self.create_url())
            if not url.scheme or not url.host:
                raise ValueError(f"URL must be absolute, got '{url}'")
            return httpx.Request(
                self.verb,
                url,
                headers=headers,
                content=self.request_body(),
                extensions={"timeout": httpx.Timeout(self.timeout).as_dict()},
            )
        except (httpx.InvalidURL, httpx.UnsupportedProtocol, ValueError, TypeError) as e:
            raise ConfigurationError(f"Cannot assemble request: {e}") from e

    # -------------------------------------------------------------------------
    # Execution (see fluent_request.executor)
    # -------------------------------------------------------------------------

    def executor(self) -> Executor:
        from fluent_request.executor import Executor

        return Executor(self)

    def fetch_raw_response(self) -> httpx.Response:
        """Send the request and return the unread, streaming response.

        The caller must close it with ``response.close()``.
        """
        return self.executor().fetch_raw_response()

    def execute(self) -> None:
        self.executor().execute()

    def execute_with_meta(self) -> ResponseMeta:
        return self.executor().execute_with_meta()

    def fetch_string(self) -> str:
        return self.executor().fetch_string()

    def fetch_string_with_meta(self) -> tuple[str, ResponseMeta]:
        return self.executor().fetch_string_with_meta()

    def fetch_json(self) -> Any:
        return self.executor().fetch_json()

    def fetch_json_to_object(self, destination: Any) -> None:
        self.executor().fetch_json_to_object(destination)

    def fetch_json_to_object_with_meta(self, destination: Any) -> ResponseMeta:
        return self.executor().fetch_json_to_object_with_meta(destination)

    def fetch_json_to_object_with_error_handler(
        self, success_destination: Any, error_destination: Any
    ) -> ResponseMeta:
        return self.executor().fetch_json_to_object_with_error_handler(
            success_destination, error_destination
        )

    def fetch_json_error(self, error_destination: Any) -> ResponseMeta:
        return self.executor().fetch_json_error(error_destination)

    def fetch_xml_to_object(self, destination: Any) -> None:
        self.executor().fetch_xml_to_object(destination)

    def fetch_xml_to_object_with_meta(self, destination: Any) -> ResponseMeta:
        return self.executor().fetch_xml_to_object_with_meta(destination)

    def fetch_xml_to_object_with_error_handler(
        self, success_destination: Any, error_destination: Any
    ) -> ResponseMeta:
        return self.executor().fetch_xml_to_object_with_error_handler(
            success_destination, error_destination
        )

    def fetch_object_with_deserializer(
        self, deserializer: Deserializer, destination: Any
    ) -> ResponseMeta:
        return self.executor().fetch_object_with_deserializer(deserializer, destination)


def _form_fields(obj: Any) -> dict[str, str]:
    if isinstance(obj, BaseModel):
        data = obj.model_dump(mode="json", by_alias=True)
    else:
        data = to_jsonable_python(obj)
    if not isinstance(data, dict):
        raise TypeError(f"cannot decompose {type(obj).__name__} into form fields")
    return {str(key): value if isinstance(value, str) else json.dumps(value) for key, value in data.items()}
