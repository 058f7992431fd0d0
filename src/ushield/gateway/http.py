"""
HTTP transport to the UShield backend.

Commands are ``POST {base_url}/commands/{name}`` with a JSON object of
arguments; the backend answers ``{"result": ...}`` on success and
``{"error": "..."}`` with a non-2xx status on failure. Change events are
read from a Server-Sent Events stream at ``GET {base_url}/events``.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any, AsyncIterator

import httpx

from ushield.errors import GatewayError, ProtocolError
from ushield.gateway.base import (
    ADD_TRUSTED_DEVICE,
    BLOCK_ALL_USB_PORTS,
    GET_AUTOBLOCK_MODE,
    GET_TRUSTED_DEVICES,
    GET_USB_DEVICES,
    REMOVE_TRUSTED_DEVICE,
    RESTART_USB_SERVICE,
    SET_AUTOBLOCK_MODE,
    UNBLOCK_USB_PORT,
    ChangeEventSource,
    CommandGateway,
    EventHandler,
    Subscription,
)
from ushield.models import Device, TrustedPair

if TYPE_CHECKING:
    from ushield.config import GatewayConfig


logger = logging.getLogger(__name__)


def _auth_headers(api_key: str | None) -> dict[str, str]:
    if api_key:
        return {"Authorization": f"Bearer {api_key}"}
    return {}


def _error_message(response: httpx.Response) -> str:
    """Extract the backend's displayable message from an error response."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.text or f"HTTP {response.status_code}"


class HttpCommandGateway(CommandGateway):
    """
    Command gateway over HTTP.

    Args:
        base_url: Backend root URL
        api_key: Optional bearer token
        timeout: Request timeout in seconds; None waits indefinitely
        client: Pre-built client, mainly for tests
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers=_auth_headers(api_key),
            timeout=timeout,
        )

    async def call(self, command: str, **args: Any) -> Any:
        """
        Invoke a backend command.

        Returns:
            The ``result`` member of the response body.

        Raises:
            GatewayError: Transport failure or error response.
            ProtocolError: Response body is not the expected shape.
        """
        logger.debug("-> %s %s", command, args)
        try:
            response = await self._client.post(f"/commands/{command}", json=args)
        except httpx.HTTPError as e:
            raise GatewayError(str(e) or type(e).__name__, command=command) from e

        if response.is_error:
            raise GatewayError(_error_message(response), command=command)

        try:
            body = response.json()
        except ValueError as e:
            raise ProtocolError(f"Invalid JSON from '{command}'", command=command) from e
        if not isinstance(body, dict):
            raise ProtocolError(f"Unexpected response from '{command}'", command=command)
        return body.get("result")

    async def get_usb_devices(self) -> list[Device]:
        result = await self.call(GET_USB_DEVICES)
        if not isinstance(result, list):
            raise ProtocolError("Device list must be an array", command=GET_USB_DEVICES)
        return [Device.from_dict(item) for item in result]

    async def get_trusted_devices(self) -> list[TrustedPair]:
        result = await self.call(GET_TRUSTED_DEVICES)
        if not isinstance(result, list):
            raise ProtocolError("Trusted list must be an array", command=GET_TRUSTED_DEVICES)
        return [TrustedPair.from_wire(item) for item in result]

    async def get_autoblock_mode(self) -> bool:
        result = await self.call(GET_AUTOBLOCK_MODE)
        if not isinstance(result, bool):
            raise ProtocolError("Autoblock mode must be a boolean", command=GET_AUTOBLOCK_MODE)
        return result

    async def add_trusted_device(self, vendor_id: int, product_id: int) -> None:
        await self.call(ADD_TRUSTED_DEVICE, vendorId=vendor_id, productId=product_id)

    async def remove_trusted_device(self, vendor_id: int, product_id: int) -> None:
        await self.call(REMOVE_TRUSTED_DEVICE, vendorId=vendor_id, productId=product_id)

    async def set_autoblock_mode(self, enabled: bool) -> None:
        await self.call(SET_AUTOBLOCK_MODE, enabled=enabled)

    async def block_all_usb_ports(self) -> None:
        await self.call(BLOCK_ALL_USB_PORTS)

    async def restart_usb_service(self) -> None:
        await self.call(RESTART_USB_SERVICE)

    async def unblock_usb_port(self) -> None:
        await self.call(UNBLOCK_USB_PORT)

    async def close(self) -> None:
        await self._client.aclose()


# ============================================================================
# Server-Sent Events
# ============================================================================


async def iter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[tuple[str, str]]:
    """
    Parse a Server-Sent Events line stream.

    Yields:
        ``(event, data)`` for every dispatched record. Records without an
        ``event:`` field use the default type ``"message"``.
    """
    event = "message"
    data: list[str] = []
    async for line in lines:
        line = line.rstrip("\r\n")
        if not line:
            if data or event != "message":
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)


class _StreamSubscription(Subscription):
    def __init__(self, task: asyncio.Task) -> None:
        self._task = task

    async def unsubscribe(self) -> None:
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class HttpChangeEventSource(ChangeEventSource):
    """
    Change event source reading the backend's SSE stream.

    :meth:`subscribe` opens the stream before returning, so a backend that
    cannot serve events fails the subscription. After that each subscription
    runs its own listener task that reconnects after ``reconnect_delay``
    seconds whenever the stream drops.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        reconnect_delay: float = 2.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.reconnect_delay = reconnect_delay
        # Streams stay open indefinitely, so no read timeout
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers=_auth_headers(api_key),
            timeout=httpx.Timeout(None),
        )

    async def subscribe(self, event: str, handler: EventHandler) -> Subscription:
        """
        Connect to the event stream and deliver ``event`` records to handler.

        Raises:
            GatewayError: If the first connection fails.
        """
        try:
            response = await self._connect()
        except httpx.HTTPError as e:
            raise GatewayError(str(e) or type(e).__name__, command="subscribe") from e

        task = asyncio.create_task(self._listen(event, handler, response))
        return _StreamSubscription(task)

    async def _connect(self) -> httpx.Response:
        request = self._client.build_request(
            "GET", "/events", headers={"Accept": "text/event-stream"}
        )
        response = await self._client.send(request, stream=True)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError:
            await response.aclose()
            raise
        logger.info("Connected to backend event stream")
        return response

    async def _reconnect(self) -> httpx.Response:
        while True:
            logger.info("Event stream closed, reconnecting in %.1fs", self.reconnect_delay)
            await asyncio.sleep(self.reconnect_delay)
            try:
                return await self._connect()
            except httpx.HTTPError as e:
                logger.warning("Event stream reconnect failed: %s", e)

    async def _listen(self, event: str, handler: EventHandler, response: httpx.Response) -> None:
        while True:
            try:
                async for name, _ in iter_sse_events(response.aiter_lines()):
                    if name != event:
                        continue
                    result = handler()
                    if inspect.isawaitable(result):
                        await result
            except httpx.HTTPError as e:
                logger.warning("Event stream error: %s", e)
            finally:
                await response.aclose()

            response = await self._reconnect()

    async def close(self) -> None:
        await self._client.aclose()


def create_http_transport(
    config: GatewayConfig,
) -> tuple[HttpCommandGateway, HttpChangeEventSource]:
    """Build the command gateway and event source for a configured backend."""
    gateway = HttpCommandGateway(
        config.base_url,
        api_key=config.api_key,
        timeout=config.timeout,
    )
    events = HttpChangeEventSource(
        config.base_url,
        api_key=config.api_key,
        reconnect_delay=config.reconnect_delay,
    )
    return gateway, events
