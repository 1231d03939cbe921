"""Executor - Sends a configured HTTPRequest and decodes the response.

One execution:
1. Assemble the httpx.Request (configuration errors surface here).
2. Fire the pre-request hook and log the outgoing request.
3. Consult the mock handler; a match short-circuits all network activity.
4. Resolve the transport and send.
5. Read the body, fire the response hook, then decode into the destination.

The response is closed on every path out of a fetch, including decode
failures. Only fetch_raw_response() hands an open response to the caller.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Iterator

import httpx

from fluent_request.codec import (
    Deserializer,
    bind,
    decode_json,
    deserialize_json,
    deserialize_xml,
)
from fluent_request.errors import DecodeError, HandlerError, TransportError
from fluent_request.models import LogLevel, ResponseMeta
from fluent_request.transport import TransportFactory

if TYPE_CHECKING:
    from fluent_request.request import HTTPRequest

BodyHandler = Callable[[bytes], None]

# Response extension holding the metadata a mock handler declared
_MOCKED_META = "fluent_request.mocked_meta"


class _ClientClosingStream(httpx.SyncByteStream):
    """Response stream that closes the executor-owned client along with itself."""

    def __init__(self, stream: httpx.SyncByteStream, client: httpx.Client) -> None:
        self._stream = stream
        self._client = client

    def __iter__(self) -> Iterator[bytes]:
        yield from self._stream

    def close(self) -> None:
        try:
            self._stream.close()
        finally:
            self._client.close()


class Executor:
    """Runs round trips for one HTTPRequest.

    Usage:
        meta = Executor(request).fetch_json_to_object_with_meta(destination)

    Every HTTPRequest.fetch_* method delegates here.
    """

    def __init__(self, request: HTTPRequest) -> None:
        self._request = request

    # -------------------------------------------------------------------------
    # Raw round trip
    # -------------------------------------------------------------------------

    def fetch_raw_response(self) -> httpx.Response:
        """Send the request and return the response with its body unread.

        Raises:
            ConfigurationError: If the request cannot be assembled.
            HandlerError: If a hook or the mock handler raises.
            TransportError: If sending fails or the mock reports an error.
        """
        request = self._request
        http_request = request.create_http_request()
        self._announce_request()

        mocked = self._mocked_response(http_request)
        if mocked is not None:
            return mocked

        factory = TransportFactory(
            transport=request.transport,
            tls_cert_path=request.tls_cert_path,
            tls_key_path=request.tls_key_path,
            keep_alive=request.keep_alive,
            timeout=request.timeout,
            on_create_transport=request.create_transport_handler,
            log=request.log,
        )
        transport = factory.resolve(http_request.url)
        # A caller-supplied transport outlives the execution, so the client
        # wrapping it is never closed.
        owns_client = transport is None or transport is not request.transport
        client = self._create_client(transport)

        try:
            response = client.send(http_request, stream=True)
        except (httpx.HTTPError, OSError) as e:
            if owns_client:
                client.close()
            request.log(
                LogLevel.ERRORS,
                "Service Request ==> %s %s failed: %s",
                http_request.method,
                http_request.url,
                e,
            )
            raise _transport_error(e) from e

        if owns_client:
            response.stream = _ClientClosingStream(response.stream, client)
        return response

    def _create_client(self, transport: httpx.BaseTransport | None) -> httpx.Client:
        timeout = httpx.Timeout(self._request.timeout)
        if transport is None:
            return httpx.Client(timeout=timeout)
        # Environment proxies would route around the resolved transport
        return httpx.Client(transport=transport, timeout=timeout, trust_env=False)

    def _mocked_response(self, http_request: httpx.Request) -> httpx.Response | None:
        handler = self._request.mock_handler
        if handler is None:
            return None

        try:
            mocked = handler(self._request.verb, http_request.url)
        except Exception as e:
            raise HandlerError(f"Mock response handler failed: {e}") from e
        if mocked is None:
            return None

        declared = mocked.meta or ResponseMeta(status_code=httpx.codes.OK)
        header_items = [(key, value) for key, values in declared.headers.items() for value in values]
        meta = ResponseMeta.from_headers(declared.status_code, header_items)
        self._request.log(LogLevel.DEBUG, "Service Request ==> Using Mocked Response")

        if mocked.error is not None:
            raise TransportError(f"Mocked response error: {mocked.error}", meta=meta) from mocked.error

        # The mocked body is already decoded; a declared Content-Encoding
        # stays in the metadata but must not reach httpx's decoder.
        try:
            return httpx.Response(
                status_code=meta.status_code,
                headers=[(key, value) for key, value in header_items if key != "content-encoding"],
                content=mocked.body,
                request=http_request,
                extensions={_MOCKED_META: meta},
            )
        except httpx.HTTPError as e:
            raise _transport_error(e, meta) from e

    # -------------------------------------------------------------------------
    # Whole-body fetches
    # -------------------------------------------------------------------------

    def execute(self) -> None:
        """Send the request and discard the response."""
        self.execute_with_meta()

    def execute_with_meta(self) -> ResponseMeta:
        """Send the request, discard the body, return the response metadata."""
        response = self.fetch_raw_response()
        try:
            return _response_meta(response)
        finally:
            response.close()

    def fetch_string(self) -> str:
        body, _ = self.fetch_string_with_meta()
        return body

    def fetch_string_with_meta(self) -> tuple[str, ResponseMeta]:
        response, meta = self._read()
        return response.text, meta

    def fetch_json(self) -> Any:
        """Decode a JSON response into plain Python values."""
        response, meta = self._read()
        return self._decode(meta, response.content, decode_json)

    def fetch_json_to_object(self, destination: Any) -> None:
        self.fetch_json_to_object_with_meta(destination)

    def fetch_json_to_object_with_meta(self, destination: Any) -> ResponseMeta:
        return self.fetch_object_with_deserializer(deserialize_json, destination)

    def fetch_json_to_object_with_error_handler(
        self, success_destination: Any, error_destination: Any
    ) -> ResponseMeta:
        """Decode into ``success_destination`` on 200, else ``error_destination``."""
        return self._fetch_with_error_handler(
            bind(deserialize_json, success_destination),
            bind(deserialize_json, error_destination),
        )

    def fetch_json_error(self, error_destination: Any) -> ResponseMeta:
        """Decode only non-200 bodies, into ``error_destination``."""
        return self._fetch_with_error_handler(None, bind(deserialize_json, error_destination))

    def fetch_xml_to_object(self, destination: Any) -> None:
        self.fetch_xml_to_object_with_meta(destination)

    def fetch_xml_to_object_with_meta(self, destination: Any) -> ResponseMeta:
        return self.fetch_object_with_deserializer(deserialize_xml, destination)

    def fetch_xml_to_object_with_error_handler(
        self, success_destination: Any, error_destination: Any
    ) -> ResponseMeta:
        return self._fetch_with_error_handler(
            bind(deserialize_xml, success_destination),
            bind(deserialize_xml, error_destination),
        )

    def fetch_object_with_deserializer(
        self, deserializer: Deserializer, destination: Any
    ) -> ResponseMeta:
        """Decode the body with any deserializer, regardless of status."""
        response, meta = self._read()
        self._decode(meta, response.content, bind(deserializer, destination))
        return meta

    def _fetch_with_error_handler(
        self, ok_handler: BodyHandler | None, error_handler: BodyHandler | None
    ) -> ResponseMeta:
        response, meta = self._read()
        handler = ok_handler if meta.is_ok else error_handler
        if handler is not None:
            self._decode(meta, response.content, handler)
        return meta

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _read(self) -> tuple[httpx.Response, ResponseMeta]:
        """Fetch, read the whole body, close, and fire the response hook.

        The returned metadata carries the decoded body length.
        """
        response = self.fetch_raw_response()
        meta = _response_meta(response)
        try:
            body = response.read()
        except httpx.HTTPError as e:
            self._request.log(LogLevel.ERRORS, "Service Response ==> read failed: %s", e)
            raise _transport_error(e, meta) from e
        finally:
            response.close()

        meta = meta.with_content_length(len(body))
        self._announce_response(meta, body)
        return response, meta

    def _decode(self, meta: ResponseMeta, body: bytes, handler: Callable[[bytes], Any]) -> Any:
        try:
            return handler(body)
        except Exception as e:
            self._request.log(LogLevel.ERRORS, "Service Response ==> decode failed: %s", e)
            raise DecodeError(f"Cannot decode response body: {e}", meta=meta) from e

    def _announce_request(self) -> None:
        request = self._request
        if request.request_handler is not None:
            try:
                request.request_handler(request.request_meta())
            except Exception as e:
                raise HandlerError(f"Request hook failed: {e}") from e
        request.log(LogLevel.VERBOSE, "Service Request ==> %s %s", request.verb, request.create_url())

    def _announce_response(self, meta: ResponseMeta, body: bytes) -> None:
        request = self._request
        if request.response_handler is not None:
            try:
                request.response_handler(meta, body)
            except Exception as e:
                raise HandlerError(f"Response hook failed: {e}", meta=meta) from e
        request.log(
            LogLevel.VERBOSE,
            "Service Response ==> %s",
            body.decode("utf-8", errors="replace"),
        )


def _transport_error(error: Exception, meta: ResponseMeta | None = None) -> TransportError:
    if isinstance(error, httpx.TimeoutException):
        return TransportError(f"Request timeout: {error}", meta=meta)
    if isinstance(error, httpx.ConnectError):
        return TransportError(f"Connection error: {error}", meta=meta)
    return TransportError(f"Request error: {error}", meta=meta)


def _response_meta(response: httpx.Response) -> ResponseMeta:
    mocked = response.extensions.get(_MOCKED_META)
    if mocked is not None:
        return mocked
    return ResponseMeta.from_response(response)
