"""Transport Factory - decides which httpx transport a request uses.

Resolution order:
1. A caller-supplied transport is used as-is.
2. TLS client materials, a transport-creation hook, or keep-alive force a
   freshly built DialingTransport.
3. Otherwise None is returned and httpx.Client uses its default transport.

A built transport disables connection reuse unless keep-alive is requested,
and reports every dial to a debug hook before connecting.
"""

from __future__ import annotations

import socket
import ssl
from typing import Any, Callable, Iterable

import certifi
import httpcore
import httpx

from fluent_request.errors import ConfigurationError, HandlerError
from fluent_request.models import CreateTransportHandler, LogLevel

# Keep-alive probe interval applied to dialed sockets, in seconds.
KEEP_ALIVE_INTERVAL = 30

DialHook = Callable[[str], None]
LogFunc = Callable[..., None]

_MAX_CONNECTIONS = 100
_MAX_KEEPALIVE_CONNECTIONS = 20


def keep_alive_socket_options(interval: int = KEEP_ALIVE_INTERVAL) -> list[tuple[int, int, int]]:
    """Socket options enabling TCP keep-alive probes every ``interval`` seconds.

    TCP_KEEPIDLE / TCP_KEEPINTVL are only added where the platform defines them.
    """
    options = [(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)]
    if hasattr(socket, "TCP_KEEPIDLE"):
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, interval))
    elif hasattr(socket, "TCP_KEEPALIVE"):
        # macOS spells the idle option differently
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPALIVE, interval))
    if hasattr(socket, "TCP_KEEPINTVL"):
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, interval))
    return options


def load_client_certificate(cert_path: str, key_path: str) -> ssl.SSLContext:
    """Create a verifying SSL context presenting the given client certificate.

    Raises:
        ConfigurationError: If the certificate/key pair cannot be loaded.
    """
    context = ssl.create_default_context(cafile=certifi.where())
    try:
        context.load_cert_chain(certfile=cert_path, keyfile=key_path)
    except OSError as e:
        # ssl.SSLError is an OSError subclass; missing files land here too
        raise ConfigurationError(
            f"Cannot load TLS client certificate '{cert_path}' with key '{key_path}': {e}"
        ) from e
    return context


class LoggedNetworkBackend(httpcore.NetworkBackend):
    """Network backend that announces each dial, then connects synchronously.

    When ``dial_timeout`` is set it bounds every connection attempt,
    overriding whatever connect timeout httpx passes down.
    """

    def __init__(
        self,
        on_dial: DialHook | None = None,
        dial_timeout: float | None = None,
        backend: httpcore.NetworkBackend | None = None,
    ) -> None:
        self.on_dial = on_dial
        self.dial_timeout = dial_timeout
        self._backend = backend or httpcore.SyncBackend()

    def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: float | None = None,
        local_address: str | None = None,
        socket_options: Iterable[Any] | None = None,
    ) -> httpcore.NetworkStream:
        if self.on_dial is not None:
            self.on_dial(f"{host}:{port}")
        if self.dial_timeout is not None:
            timeout = self.dial_timeout
        return self._backend.connect_tcp(
            host,
            port,
            timeout=timeout,
            local_address=local_address,
            socket_options=socket_options,
        )

    def connect_unix_socket(
        self,
        path: str,
        timeout: float | None = None,
        socket_options: Iterable[Any] | None = None,
    ) -> httpcore.NetworkStream:
        if self.on_dial is not None:
            self.on_dial(path)
        if self.dial_timeout is not None:
            timeout = self.dial_timeout
        return self._backend.connect_unix_socket(path, timeout=timeout, socket_options=socket_options)

    def sleep(self, seconds: float) -> None:
        self._backend.sleep(seconds)


class DialingTransport(httpx.HTTPTransport):
    """httpx transport whose connection pool dials through LoggedNetworkBackend.

    The creation hook may adjust ``ssl_context`` (shared with the pool) or
    ``network_backend`` before the first request is sent.
    """

    def __init__(
        self,
        ssl_context: ssl.SSLContext | None = None,
        keep_alive: bool = False,
        dial_timeout: float | None = None,
        on_dial: DialHook | None = None,
    ) -> None:
        self.ssl_context = ssl_context or ssl.create_default_context(cafile=certifi.where())
        self.keep_alive = keep_alive
        self.socket_options = keep_alive_socket_options() if keep_alive else None
        self.limits = httpx.Limits(
            max_connections=_MAX_CONNECTIONS,
            max_keepalive_connections=_MAX_KEEPALIVE_CONNECTIONS if keep_alive else 0,
        )
        self.network_backend = LoggedNetworkBackend(on_dial=on_dial, dial_timeout=dial_timeout)

        super().__init__(
            verify=self.ssl_context,
            limits=self.limits,
            socket_options=self.socket_options,
        )

        # Rebuild the pool so it dials through our backend. Same settings
        # as the pool HTTPTransport builds for a direct (non-proxied) connection.
        self._pool = httpcore.ConnectionPool(
            ssl_context=self.ssl_context,
            max_connections=self.limits.max_connections,
            max_keepalive_connections=self.limits.max_keepalive_connections,
            keepalive_expiry=self.limits.keepalive_expiry,
            network_backend=self.network_backend,
            socket_options=self.socket_options,
        )


class TransportFactory:
    """Builds (or reuses) the transport for one request execution.

    Usage:
        factory = TransportFactory(tls_cert_path="client.pem", tls_key_path="client.key")
        transport = factory.resolve(httpx.URL("https://example.com/"))
        client = httpx.Client(transport=transport) if transport else httpx.Client()
    """

    def __init__(
        self,
        transport: httpx.BaseTransport | None = None,
        tls_cert_path: str = "",
        tls_key_path: str = "",
        keep_alive: bool = False,
        timeout: float | None = None,
        on_create_transport: CreateTransportHandler | None = None,
        log: LogFunc | None = None,
    ) -> None:
        self._transport = transport
        self._tls_cert_path = tls_cert_path
        self._tls_key_path = tls_key_path
        self._keep_alive = keep_alive
        self._timeout = timeout
        self._on_create_transport = on_create_transport
        self._log = log

    @property
    def uses_tls(self) -> bool:
        """TLS client auth is active only when both paths are non-empty."""
        return bool(self._tls_cert_path) and bool(self._tls_key_path)

    def requires_custom_transport(self) -> bool:
        return (
            self._transport is not None
            or self.uses_tls
            or self._on_create_transport is not None
            or self._keep_alive
        )

    def resolve(self, target_url: httpx.URL) -> httpx.BaseTransport | None:
        """Return the transport to use, or None for the httpx default.

        Raises:
            ConfigurationError: If TLS materials cannot be loaded.
            HandlerError: If the transport-creation hook raises.
        """
        if self._transport is not None:
            self._emit(LogLevel.DEBUG, "Service Request ==> Using Provided Transport")
            return self._transport
        if not self.requires_custom_transport():
            return None
        return self.create_transport(target_url)

    def create_transport(self, target_url: httpx.URL) -> DialingTransport:
        self._emit(LogLevel.DEBUG, "Service Request ==> Creating Custom Transport")

        ssl_context = None
        if self.uses_tls:
            ssl_context = load_client_certificate(self._tls_cert_path, self._tls_key_path)

        if self._keep_alive:
            self._emit(
                LogLevel.DEBUG,
                "Service Request ==> Transport Enabled For `keep-alive` %ss",
                KEEP_ALIVE_INTERVAL,
            )

        transport = DialingTransport(
            ssl_context=ssl_context,
            keep_alive=self._keep_alive,
            dial_timeout=self._timeout,
            on_dial=self._announce_dial,
        )

        if self._on_create_transport is not None:
            try:
                self._on_create_transport(target_url, transport)
            except Exception as e:
                transport.close()
                raise HandlerError(f"Transport creation hook failed: {e}") from e

        return transport

    def _announce_dial(self, address: str) -> None:
        self._emit(LogLevel.DEBUG, "Service Request ==> Transport Is Dialing %s", address)

    def _emit(self, level: LogLevel, message: str, *args: Any) -> None:
        if self._log is not None:
            self._log(level, message, *args)
