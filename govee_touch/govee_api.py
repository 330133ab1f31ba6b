#!/usr/bin/env python3
"""
Govee API client.

Thin aiohttp wrapper around the Govee developer API. ``send`` is the
dispatch boundary used by the touch pipeline: it never raises for transport,
HTTP or API errors and reports them as a failed DispatchResult instead.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import aiohttp

from govee_touch.commands import CommandIntent, to_capability
from govee_touch.errors import DispatchError

# Configure logger
logger = logging.getLogger("govee_touch.govee_api")

DEVICES_PATH = "/router/api/v1/user/devices"
DEVICE_STATE_PATH = "/router/api/v1/device/state"
DEVICE_CONTROL_PATH = "/router/api/v1/device/control"


@dataclass
class DispatchResult:
    """Outcome of handing one command to the remote API."""

    success: bool
    error: Optional[str] = None
    response: Optional[Dict[str, Any]] = None


class CommandSink(Protocol):
    async def send(self, intent: CommandIntent) -> DispatchResult: ...


class GoveeClient:
    """Client for the Govee developer API (one device, one API key)."""

    def __init__(
        self,
        api_key: str,
        device_sku: Optional[str] = None,
        device_id: Optional[str] = None,
        api_url: str = "https://openapi.api.govee.com",
        timeout_sec: float = 5.0,
    ):
        """Initialize the client.

        Args:
            api_key: Govee developer API key
            device_sku: Device model, required for state and control requests
            device_id: Device id, required for state and control requests
            api_url: API base URL
            timeout_sec: Total timeout for each request
        """
        self.api_url = api_url.rstrip("/")
        self.device_sku = device_sku
        self.device_id = device_id
        self.timeout_sec = timeout_sec
        self._headers = {
            "Govee-API-Key": api_key,
            "Content-Type": "application/json",
        }
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        """Open the shared HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self._headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout_sec),
            )

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "GoveeClient":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def get_devices(self) -> Dict[str, Any]:
        """Return the device list of the account."""
        return await self._request("GET", DEVICES_PATH)

    async def get_device_state(self) -> Dict[str, Any]:
        """Return the current state of the configured device."""
        return await self._request("POST", DEVICE_STATE_PATH, self._device_payload())

    async def control_device(self, capability: Dict[str, Any]) -> Dict[str, Any]:
        """Send a capability command to the configured device.

        Raises:
            DispatchError: If the request fails or the API rejects it
        """
        payload = self._device_payload()
        payload["payload"]["capability"] = capability
        return await self._request("POST", DEVICE_CONTROL_PATH, payload)

    async def send(self, intent: CommandIntent) -> DispatchResult:
        """Dispatch a command intent, converting every failure into a result."""
        try:
            response = await self.control_device(to_capability(intent))
        except DispatchError as e:
            return DispatchResult(success=False, error=str(e))
        return DispatchResult(success=True, response=response)

    def _device_payload(self) -> Dict[str, Any]:
        if not self.device_sku or not self.device_id:
            raise DispatchError("device_sku and device_id must be configured")
        return {
            "requestId": str(uuid.uuid4()),
            "payload": {"sku": self.device_sku, "device": self.device_id},
        }

    async def _request(
        self, method: str, path: str, body: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        if self._session is None or self._session.closed:
            await self.start()

        url = f"{self.api_url}{path}"
        try:
            async with self._session.request(method, url, json=body) as response:
                if response.status != 200:
                    text = await response.text()
                    raise DispatchError(
                        f"{method} {path} failed with status {response.status}: {text[:200]}"
                    )
                data = await response.json(content_type=None)

        except asyncio.TimeoutError as e:
            raise DispatchError(
                f"{method} {path} timed out after {self.timeout_sec}s"
            ) from e
        except (aiohttp.ClientError, ValueError) as e:
            raise DispatchError(f"{method} {path} failed: {e}") from e

        if not isinstance(data, dict):
            raise DispatchError(f"{method} {path} returned an unexpected body")

        code = data.get("code", 200)
        if code != 200:
            raise DispatchError(
                f"{method} {path} rejected by API (code {code}): {data.get('msg') or data.get('message')}"
            )
        return data


class DryRunSink:
    """Logs commands instead of sending them. Every dispatch succeeds."""

    def __init__(self):
        self.sent = []

    async def send(self, intent: CommandIntent) -> DispatchResult:
        capability = to_capability(intent)
        self.sent.append(capability)
        logger.info(f"[dry-run] would send {capability}")
        return DispatchResult(success=True, response={"dry_run": True})
