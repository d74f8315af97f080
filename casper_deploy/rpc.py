"""
Minimal JSON-RPC client for the read-only node calls.

Deploy submission does not go through here; it is delegated to the external
client (see deploy.py).
"""

import asyncio
import itertools
import json
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from .errors import ConnectivityError, EmptyResultError, MalformedResponseError, NotFoundError, RpcError

logger = logging.getLogger(__name__)

STATE_ROOT_HASH_METHOD = "chain_get_state_root_hash"
QUERY_STATE_METHOD = "state_get_item"
GET_DEPLOY_METHOD = "info_get_deploy"

# Node error code for a failed global state query
QUERY_FAILED_CODE = -32003
NOT_FOUND_MARKERS = ("valuenotfound", "value not found", "not found")


def rpc_url(node_address: str) -> str:
    """Node address as used by casper-client -> JSON-RPC endpoint."""
    url = node_address.rstrip("/")
    if not url.endswith("/rpc"):
        url = f"{url}/rpc"
    return url


def error_object(error: Any) -> Dict[str, Any]:
    """JSON-RPC error member as a dict; a bare string or other value becomes its message."""
    if isinstance(error, dict):
        return error
    if error is None:
        return {}
    return {"message": str(error)}


def _is_not_found(error: Dict[str, Any]) -> bool:
    text = f"{error.get('message', '')} {error.get('data', '')}".lower()
    return any(marker in text for marker in NOT_FOUND_MARKERS)


class NodeRpcClient:
    """
    Async JSON-RPC client bound to one node endpoint.

    Use as an async context manager so the aiohttp session is closed:

        async with NodeRpcClient(config.node_address) as rpc:
            root = await rpc.get_state_root_hash()
    """

    def __init__(self, node_address: str, timeout: float = 30.0):
        self.url = rpc_url(node_address)
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._ids = itertools.count(1)

    async def __aenter__(self) -> "NodeRpcClient":
        self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def call(self, method: str, params: Any = None) -> Dict[str, Any]:
        """Make a raw RPC call and return the whole response object."""
        if self._session is None:
            raise RuntimeError("NodeRpcClient used outside of 'async with'")

        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params if params is not None else [],
            "id": next(self._ids),
        }
        logger.debug(f"RPC {method} -> {self.url} params={params}")
        try:
            async with self._session.post(self.url, json=payload) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise ConnectivityError(f"Node at {self.url} answered HTTP {resp.status}: {text[:200]}")
                body = await resp.json(content_type=None)
        except (aiohttp.ContentTypeError, json.JSONDecodeError) as e:
            raise MalformedResponseError(f"Node returned invalid JSON for {method}: {e}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ConnectivityError(f"Cannot reach node at {self.url}: {str(e) or type(e).__name__}") from e

        if not isinstance(body, dict):
            raise MalformedResponseError(f"Node returned a non-object response for {method}")
        return body

    async def get_state_root_hash(self) -> str:
        body = await self.call(STATE_ROOT_HASH_METHOD)
        if "error" in body:
            error = error_object(body["error"])
            raise ConnectivityError(f"Failed to retrieve state_root_hash: {error.get('message', error)}")
        result = body.get("result")
        if not isinstance(result, dict):
            raise ConnectivityError("Failed to retrieve state_root_hash: response has no result")

        state_root_hash = result.get("state_root_hash")
        if not state_root_hash:
            raise EmptyResultError("Failed to retrieve state_root_hash: result.state_root_hash is empty")
        logger.info(f"Retrieved state_root_hash: {state_root_hash}")
        return state_root_hash

    async def query_state(self, state_root_hash: str, key: str, path: Optional[List[str]] = None) -> Dict[str, Any]:
        """Return result.stored_value for `key`/`path` under `state_root_hash`."""
        params = {
            "state_root_hash": state_root_hash,
            "key": key,
            "path": list(path or []),
        }
        body = await self.call(QUERY_STATE_METHOD, params)
        location = "/".join([key, *params["path"]])
        if "error" in body:
            error = error_object(body["error"])
            message = error.get("message", str(error))
            if error.get("code") == QUERY_FAILED_CODE or _is_not_found(error):
                raise NotFoundError(f"{location} not found under state root {state_root_hash}: {message}")
            raise RpcError(f"query_state failed for {location}: {message}", code=error.get("code"))

        result = body.get("result")
        if not isinstance(result, dict):
            raise MalformedResponseError(f"query_state response for {location} has no result")
        stored_value = result.get("stored_value")
        if not isinstance(stored_value, dict) or not stored_value:
            raise MalformedResponseError(f"query_state response for {location} has no stored_value")
        return stored_value

    async def get_deploy(self, deploy_hash: str) -> Dict[str, Any]:
        body = await self.call(GET_DEPLOY_METHOD, {"deploy_hash": deploy_hash})
        if "error" in body:
            error = error_object(body["error"])
            message = error.get("message", str(error))
            if _is_not_found(error):
                raise NotFoundError(f"Deploy {deploy_hash} not known to the node yet: {message}")
            raise RpcError(f"info_get_deploy failed for {deploy_hash}: {message}", code=error.get("code"))
        result = body.get("result")
        if not isinstance(result, dict):
            raise MalformedResponseError(f"info_get_deploy response for {deploy_hash} has no result")
        return result
