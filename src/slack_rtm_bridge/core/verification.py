"""Pre-flight TLS verification of the RTM endpoint.

Some networks serve an incomplete certificate chain for a while after it
rotates, which makes the first websocket handshakes fail. When
``rtm_connection_verify_peer`` is disabled the bridge probes the endpoint
with a bare TLS handshake, retrying on a fixed interval, and only opens
the real stream once a handshake succeeds. The real stream still does
its own certificate validation.
"""

from __future__ import annotations

import asyncio
import ssl
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

if TYPE_CHECKING:
    from ..config.schema import VerificationConfig

DEFAULT_HOST = "wss-primary.slack.com"
DEFAULT_PORT = 443

Handshake = Callable[[str, int, float], Awaitable[Any]]


async def tls_handshake(host: str, port: int, timeout: float) -> dict[str, Any] | None:
    """Open a TLS connection, validate the peer and close it again.

    Returns:
        The peer certificate as returned by ``SSLSocket.getpeercert()``.

    Raises:
        ssl.SSLError: If the certificate chain does not validate.
        OSError: On connection failures and timeouts.
    """
    context = ssl.create_default_context()
    _, writer = await asyncio.wait_for(
        asyncio.open_connection(host, port, ssl=context, server_hostname=host),
        timeout=timeout,
    )
    try:
        peer_cert: dict[str, Any] | None = writer.get_extra_info("peercert")
        return peer_cert
    finally:
        writer.close()
        await writer.wait_closed()


class PeerVerifier:
    """Retries a TLS handshake until it succeeds or the attempts run out.

    Example:
        verifier = PeerVerifier(max_retries=10, wait_time=5)
        await verifier.verify()  # raises the last error when exhausted
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        max_retries: int = 10,
        wait_time: float = 5.0,
        timeout: float = 10.0,
        handshake: Handshake | None = None,
        logger: Any = None,
    ) -> None:
        """Initialize the verifier.

        Args:
            host: Host to probe
            port: Port to probe
            max_retries: Total number of handshake attempts
            wait_time: Seconds to sleep between attempts
            timeout: Seconds allowed for a single handshake
            handshake: Replacement for ``tls_handshake``, mainly for tests
            logger: Optional structlog logger
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.host = host
        self.port = port
        self.max_retries = max_retries
        self.wait_time = wait_time
        self.timeout = timeout
        self._handshake = handshake or tls_handshake
        self._log = logger or structlog.get_logger(__name__)

    @classmethod
    def from_config(
        cls,
        config: VerificationConfig,
        handshake: Handshake | None = None,
        logger: Any = None,
    ) -> PeerVerifier:
        return cls(
            host=config.host,
            port=config.port,
            max_retries=config.max_retries,
            wait_time=config.wait_time,
            timeout=config.timeout,
            handshake=handshake,
            logger=logger,
        )

    async def verify(self) -> None:
        """Block until a handshake succeeds.

        Raises:
            OSError: The last handshake failure (usually ``ssl.SSLError``)
                once ``max_retries`` attempts have failed.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_fixed(self.wait_time),
            retry=retry_if_exception_type(OSError),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    await self._attempt(attempt.retry_state.attempt_number)
        except OSError as e:
            self._log.error(
                "ssl_verification_exhausted",
                host=self.host,
                attempts=self.max_retries,
                error=str(e),
            )
            raise

        self._log.info("ssl_connection_verified", host=self.host)

    async def _attempt(self, attempt_number: int) -> None:
        try:
            await self._handshake(self.host, self.port, self.timeout)
        except OSError as e:
            self._log.warning(
                "ssl_verification_failed",
                host=self.host,
                attempt=attempt_number,
                max_retries=self.max_retries,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise
