"""Host bridge: the single request/response capability the client depends on.

The session only needs ``Invoker``; ``HttpBridge`` is the implementation that
talks to the VisionBridge host API over HTTP.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from visionbridge.config import resolve_api_key

if TYPE_CHECKING:
    from collections.abc import Mapping
    from types import TracebackType

    from visionbridge.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS: float = 150.0


class Command(StrEnum):
    SAVE_UPLOADED_IMAGE = "save_uploaded_image"
    PROCESS_IMAGE = "process_image"


class BridgeError(Exception):
    """The bridge call itself failed (transport, process or host failure)."""


class UnknownCommandError(BridgeError):
    """The host does not implement the requested command."""


class MalformedResponseError(BridgeError):
    """A bridge response matched neither the expected nor the error shape."""


class Invoker(Protocol):
    """Protocol for the host-bridge capability."""

    async def invoke(self, command: str, args: Mapping[str, Any]) -> Any:
        """Run a host command and return its decoded result.

        Raises:
            BridgeError: If the call cannot be completed.
        """
        ...


class HttpBridge:
    """Invoker backed by the host API's ``/api/v1/invoke/{command}`` endpoint.

    Pass ``client`` to reuse an existing ``httpx.AsyncClient`` (for example
    one mounted on an ASGI transport). The injected client keeps its own
    base URL and timeout, so ``base_url`` must agree with it and ``timeout``
    must be left unset; conflicting values raise ``ValueError``. An injected
    client is not closed by ``aclose()``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        base_url = base_url.rstrip("/")
        if client is None:
            client = httpx.AsyncClient(base_url=base_url, timeout=DEFAULT_TIMEOUT_SECONDS if timeout is None else timeout)
            self._owns_client = True
        else:
            if timeout is not None:
                raise ValueError("timeout cannot be set when an httpx client is injected")
            client_url = str(client.base_url).rstrip("/")
            if client_url != base_url:
                raise ValueError(f"base_url {base_url!r} does not match the injected client's {client_url!r}")
            self._owns_client = False
        self._client = client
        self._headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}

    @classmethod
    def from_settings(cls, settings: Settings) -> HttpBridge:
        return cls(settings.bridge_url, api_key=resolve_api_key(settings), timeout=settings.request_timeout)

    async def invoke(self, command: str, args: Mapping[str, Any]) -> Any:
        try:
            response = await self._client.post(
                f"/api/v1/invoke/{command}",
                json=dict(args),
                headers=self._headers,
            )
        except httpx.TimeoutException as exc:
            raise BridgeError(f"Timed out waiting for {command}") from exc
        except httpx.HTTPError as exc:
            raise BridgeError(f"Failed to call {command}: {exc}") from exc

        if response.is_error:
            detail = _error_detail(response)
            logger.debug("Command %s failed with HTTP %s: %s", command, response.status_code, detail)
            if response.status_code == httpx.codes.NOT_FOUND:
                raise UnknownCommandError(detail)
            raise BridgeError(detail)
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"{command} returned a non-JSON body") from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpBridge:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    detail = data.get("detail") if isinstance(data, dict) else None
    if isinstance(detail, str) and detail:
        return detail
    return f"HTTP {response.status_code}: {response.text or response.reason_phrase}"
