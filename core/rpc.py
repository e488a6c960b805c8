"""
RPC Client - single read-only eth_call against one JSON-RPC node

Design:
- aiohttp session created lazily and reused across calls
- Exactly one HTTP attempt per call: retries belong to the caller
- Every failure is typed: TransportError / NodeError / ProtocolError
- Block tag is always "latest" (point-in-time snapshot, no history)
"""

import asyncio
import itertools
import json
import logging
from typing import Optional, Union

import aiohttp

from .errors import NodeError, ProtocolError, TransportError

logger = logging.getLogger("tiers.rpc")

DEFAULT_TIMEOUT_SECONDS = 20.0


class RpcClient:
    """
    JSON-RPC client for contract reads.

    Usage:
        async with RpcClient("https://rpc.zklink.io/") as rpc:
            raw = await rpc.call(token_address, encode_call("decimals()"))
    """

    def __init__(self, rpc_url: str, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
                 session: Optional[aiohttp.ClientSession] = None):
        self.rpc_url = rpc_url
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"Content-Type": "application/json"},
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "RpcClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def build_payload(self, contract_address: str, data: str) -> dict:
        return {
            "jsonrpc": "2.0",
            "method": "eth_call",
            "params": [{"to": contract_address, "data": data}, "latest"],
            "id": next(self._ids),
        }

    async def call(self, contract_address: str, data: str) -> str:
        """Send one eth_call and return the raw 0x-prefixed hex result."""
        payload = self.build_payload(contract_address, data)
        session = await self._get_session()

        try:
            async with session.post(self.rpc_url, json=payload, timeout=self._timeout) as resp:
                body = await resp.read()
                if resp.status >= 400:
                    raise TransportError(
                        f"http error {resp.status} from {self.rpc_url}", status=resp.status
                    )
        except asyncio.TimeoutError as e:
            raise TransportError(f"rpc request timed out after {self._timeout.total:g}s") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"rpc transport failure: {type(e).__name__}: {e}") from e

        return self.parse_response(body)

    @staticmethod
    def parse_response(raw: Union[bytes, str]) -> str:
        """Extract `result` from a JSON-RPC response body."""
        try:
            text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        except UnicodeDecodeError as e:
            raise ProtocolError(f"rpc endpoint returned non-utf-8 response: {raw[:120]!r}") from e
        try:
            body = json.loads(text)
        except json.JSONDecodeError as e:
            raise ProtocolError(f"rpc endpoint returned non-json response: {text[:120]!r}") from e

        if not isinstance(body, dict):
            raise ProtocolError(f"rpc response must be an object, got {type(body).__name__}")

        error = body.get("error")
        if error is not None:
            if isinstance(error, dict):
                raise NodeError(str(error.get("message", "unknown error")), error.get("code"))
            raise NodeError(str(error))

        if "result" not in body:
            raise ProtocolError("rpc response has neither result nor error")

        result = body["result"]
        if not isinstance(result, str):
            raise ProtocolError(f"rpc result must be a hex string, got {type(result).__name__}")
        return result
