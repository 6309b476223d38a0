"""Composio tool API client (YouTube statistics, Google Calendar)."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import httpx

from pulse.connectors.base import ConnectorError, http_request

logger = logging.getLogger(__name__)

COMPOSIO_EXECUTE_URL = "https://backend.composio.dev/api/v3/tools/execute"


def dig(payload: Any, *paths: str) -> Any:
    """
    Returns the first non-empty value found along dot-separated paths.

    Upstream tools answer in several shapes; e.g.
    dig(resp, "data.items.0.statistics", "data.channels.0.statistics").
    Numeric segments index into lists.
    """
    for path in paths:
        node = payload
        for key in path.split("."):
            if isinstance(node, dict):
                node = node.get(key)
            elif isinstance(node, list) and key.isdigit() and int(key) < len(node):
                node = node[int(key)]
            else:
                node = None
            if node is None:
                break
        if node is not None and node != "" and node != [] and node != {}:
            return node
    return None


class ComposioClient:
    def __init__(
        self,
        api_key: str,
        account_id: str,
        entity_id: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.account_id = account_id
        self.entity_id = entity_id
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.account_id and self.entity_id)

    async def execute(self, tool: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """
        Runs one tool and returns the decoded response.

        Raises ConnectorError on transport failure, non-2xx status, invalid
        JSON or an explicit `successful: false`.
        """
        if not self.configured:
            raise ConnectorError(f"Composio tool {tool} called without credentials")
        resp = await http_request(
            "POST",
            f"{COMPOSIO_EXECUTE_URL}/{tool}",
            timeout=self.timeout,
            transport=self.transport,
            headers={"content-type": "application/json", "x-api-key": self.api_key},
            json={
                "connected_account_id": self.account_id,
                "entity_id": self.entity_id,
                "arguments": arguments,
            },
        )
        try:
            payload = resp.json()
        except json.JSONDecodeError as e:
            raise ConnectorError(f"Composio tool {tool} invalid JSON: {resp.text[:300]}") from e
        if not isinstance(payload, dict):
            raise ConnectorError(f"Composio tool {tool} returned {type(payload).__name__}")
        if payload.get("successful") is False:
            raise ConnectorError(f"Composio tool {tool} unsuccessful: {payload.get('error') or 'unknown error'}")
        return payload
