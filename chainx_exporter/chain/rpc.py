"""JSON-RPC ledger client for ChainX nodes.

Speaks JSON-RPC 2.0 over HTTP with httpx. Transport failures are retried with
exponential backoff and surface as LedgerUnavailable once retries are
exhausted; JSON-RPC error objects surface as TransientFetchError (per key) and
payloads that fail model validation as DecodeError.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any, Sequence

import bittensor as bt
import httpx
import xxhash
from pydantic import TypeAdapter, ValidationError

from chainx_exporter.chain.interface import NodeNominations
from chainx_exporter.chain.scale import ScaleReader
from chainx_exporter.chain.types import (
    AccountId,
    AssetInfo,
    IntentionInfo,
    NominationRecord,
    PageData,
    PseduIntentionInfo,
    PseduNominationRecord,
    TotalAssetInfo,
)
from chainx_exporter.exporter.errors import (
    DecodeError,
    ExporterError,
    LedgerUnavailable,
    TransientFetchError,
)

METHOD_NOT_FOUND = -32601
PAGE_SIZE = 10


def twox_128(data: bytes) -> bytes:
    """Two xxh64 rounds (seeds 0 and 1), each little-endian."""
    return b"".join(
        xxhash.xxh64(data, seed=seed).intdigest().to_bytes(8, "little")
        for seed in (0, 1)
    )


def storage_key(module: str, item: str) -> str:
    """Hex key of a plain storage value, hashed as ``"<Module> <Item>"``."""
    return "0x" + twox_128(f"{module} {item}".encode()).hex()


SYSTEM_EVENTS_KEY = storage_key("System", "Events")
SESSION_INDEX_KEY = storage_key("Session", "CurrentIndex")

_INTENTIONS = TypeAdapter(list[IntentionInfo])
_PSEDU_INTENTIONS = TypeAdapter(list[PseduIntentionInfo])
_NOMINATIONS = TypeAdapter(list[tuple[AccountId, NominationRecord]])
_PSEDU_NOMINATIONS = TypeAdapter(list[PseduNominationRecord])
_ASSET_PAGE = TypeAdapter(PageData[AssetInfo])
_TOTAL_ASSET_PAGE = TypeAdapter(PageData[TotalAssetInfo])


class RpcError(TransientFetchError):
    """JSON-RPC error object returned by the node."""

    def __init__(self, method: str, code: int | None, message: str):
        super().__init__(f"{method}: {message} (code {code})")
        self.method = method
        self.code = code


def _validate(adapter: TypeAdapter, data: Any, method: str) -> Any:
    if data is None:
        return None
    try:
        return adapter.validate_python(data)
    except ValidationError as e:
        raise DecodeError(f"{method}: {e.error_count()} invalid fields: {e.errors()[0]['msg']}") from e


def _hex_bytes(value: Any) -> bytes:
    if not isinstance(value, str) or not value.startswith("0x"):
        raise DecodeError(f"expected 0x-prefixed hex string, got {value!r:.80}")
    try:
        return bytes.fromhex(value[2:])
    except ValueError as e:
        raise DecodeError(f"invalid hex payload: {e}") from e


def _method_missing(result: Any) -> bool:
    return isinstance(result, RpcError) and result.code == METHOD_NOT_FOUND


class LedgerRpcClient:
    """LedgerClient backed by a ChainX node's HTTP JSON-RPC endpoint."""

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_backoff: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._max_retries = max(1, max_retries)
        self._retry_backoff = retry_backoff
        self._ids = itertools.count(1)
        # V1 methods the node answered with "method not found"
        self._legacy: set[str] = set()

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> LedgerRpcClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # -- Transport --

    def _request(self, method: str, params: list) -> dict[str, Any]:
        return {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}

    async def _post(self, payload: Any) -> Any:
        """POST with retry on transport errors and 5xx responses."""
        last_error: Exception | None = None
        for attempt in range(self._max_retries):
            try:
                resp = await self._client.post(self.url, json=payload)
                resp.raise_for_status()
                return resp.json()
            except httpx.HTTPStatusError as e:
                if e.response.status_code < 500:
                    raise LedgerUnavailable(
                        f"ledger rejected request: HTTP {e.response.status_code}"
                    ) from e
                last_error = e
            except httpx.TransportError as e:
                last_error = e
            except ValueError as e:
                raise DecodeError(f"response body is not JSON: {e}") from e
            if attempt < self._max_retries - 1:
                wait = self._retry_backoff * 2 ** attempt
                bt.logging.warning({"ledger_rpc": {"retry": attempt, "wait": wait, "error": str(last_error)}})
                await asyncio.sleep(wait)
        raise LedgerUnavailable(
            f"{self.url} unreachable after {self._max_retries} attempts: {last_error}"
        ) from last_error

    @staticmethod
    def _error(method: str, error: Any) -> RpcError:
        if isinstance(error, dict):
            return RpcError(method, error.get("code"), str(error.get("message", "")))
        return RpcError(method, None, str(error))

    @classmethod
    def _result(cls, method: str, body: Any) -> Any:
        if not isinstance(body, dict):
            raise DecodeError(f"{method}: malformed JSON-RPC response")
        error = body.get("error")
        if error:
            raise cls._error(method, error)
        return body.get("result")

    async def call(self, method: str, params: list) -> Any:
        body = await self._post(self._request(method, params))
        return self._result(method, body)

    async def call_many(self, method: str, params_list: Sequence[list]) -> list[Any]:
        """One batched round trip; per-request errors are returned, not raised."""
        if not params_list:
            return []
        requests = [self._request(method, params) for params in params_list]
        body = await self._post(requests)
        if isinstance(body, dict) and body.get("error"):
            # the node refused the batch as a whole
            error = self._error(method, body["error"])
            return [error] * len(requests)
        if not isinstance(body, list):
            raise DecodeError(f"{method}: batch response is not a list")
        by_id = {item.get("id"): item for item in body if isinstance(item, dict)}
        results: list[Any] = []
        for request in requests:
            item = by_id.get(request["id"])
            if item is None:
                results.append(TransientFetchError(f"{method}: no response for request {request['id']}"))
                continue
            try:
                results.append(self._result(method, item))
            except ExporterError as e:
                results.append(e)
        return results

    async def _call_versioned(self, method: str, params: list) -> tuple[str, Any]:
        """Call ``<method>V1``, falling back to ``<method>`` on nodes without it."""
        v1 = method + "V1"
        if v1 not in self._legacy:
            try:
                return v1, await self.call(v1, params)
            except RpcError as e:
                if e.code != METHOD_NOT_FOUND:
                    raise
                self._legacy.add(v1)
                bt.logging.warning({"ledger_rpc": {"fallback": method}})
        return method, await self.call(method, params)

    async def _many(
        self, method: str, accounts: Sequence[str], block_hash: str, adapter: TypeAdapter,
    ) -> list[Any]:
        raw = await self.call_many(method, [[account, block_hash] for account in accounts])
        results: list[Any] = []
        for item in raw:
            if isinstance(item, ExporterError):
                results.append(item)
                continue
            try:
                results.append(_validate(adapter, item, method))
            except DecodeError as e:
                results.append(e)
        return results

    async def _many_versioned(
        self, method: str, accounts: Sequence[str], block_hash: str, adapter: TypeAdapter,
    ) -> list[Any]:
        """Batched ``_call_versioned``: the legacy method is used once every V1 item is missing."""
        v1 = method + "V1"
        if v1 not in self._legacy:
            results = await self._many(v1, accounts, block_hash, adapter)
            if not results or not all(_method_missing(r) for r in results):
                return results
            self._legacy.add(v1)
            bt.logging.warning({"ledger_rpc": {"fallback": method, "batch": len(accounts)}})
        return await self._many(method, accounts, block_hash, adapter)

    async def _pages(
        self, method: str, prefix: list, block_hash: str, adapter: TypeAdapter,
    ) -> list | None:
        """Fetch every page of a paged listing."""
        items: list = []
        index = 0
        while True:
            data = await self.call(method, [*prefix, index, PAGE_SIZE, block_hash])
            page = _validate(adapter, data, method)
            if page is None:
                return None if index == 0 else items
            items.extend(page.data)
            index += 1
            if index >= page.page_total:
                return items

    # -- LedgerClient interface --

    async def block_hash(self, height: int) -> str | None:
        result = await self.call("chain_getBlockHash", [height])
        if result is not None and not isinstance(result, str):
            raise DecodeError(f"chain_getBlockHash: unexpected result {result!r:.80}")
        return result

    async def storage(self, key: str, block_hash: str) -> bytes | None:
        result = await self.call("state_getStorage", [key, block_hash])
        if result is None:
            return None
        return _hex_bytes(result)

    async def system_events(self, block_hash: str) -> bytes | None:
        return await self.storage(SYSTEM_EVENTS_KEY, block_hash)

    async def session_index(self, block_hash: str) -> int | None:
        raw = await self.storage(SESSION_INDEX_KEY, block_hash)
        if raw is None:
            return None
        reader = ScaleReader(raw)
        index = reader.u64()
        reader.finish()
        return index

    async def intentions(self, block_hash: str) -> list[IntentionInfo] | None:
        method, data = await self._call_versioned("chainx_getIntentions", [block_hash])
        return _validate(_INTENTIONS, data, method)

    async def psedu_intentions(self, block_hash: str) -> list[PseduIntentionInfo] | None:
        method, data = await self._call_versioned("chainx_getPseduIntentions", [block_hash])
        return _validate(_PSEDU_INTENTIONS, data, method)

    async def nomination_records(self, account: str, block_hash: str) -> NodeNominations | None:
        method, data = await self._call_versioned("chainx_getNominationRecords", [account, block_hash])
        return _validate(_NOMINATIONS, data, method)

    async def nomination_records_many(
        self, accounts: Sequence[str], block_hash: str,
    ) -> list[NodeNominations | None | ExporterError]:
        return await self._many_versioned("chainx_getNominationRecords", accounts, block_hash, _NOMINATIONS)

    async def psedu_nomination_records(
        self, account: str, block_hash: str,
    ) -> list[PseduNominationRecord] | None:
        method, data = await self._call_versioned(
            "chainx_getPseduNominationRecords", [account, block_hash],
        )
        return _validate(_PSEDU_NOMINATIONS, data, method)

    async def psedu_nomination_records_many(
        self, accounts: Sequence[str], block_hash: str,
    ) -> list[list[PseduNominationRecord] | None | ExporterError]:
        return await self._many_versioned(
            "chainx_getPseduNominationRecords", accounts, block_hash, _PSEDU_NOMINATIONS,
        )

    async def account_assets(self, account: str, block_hash: str) -> list[AssetInfo] | None:
        return await self._pages("chainx_getAssetsByAccount", [account], block_hash, _ASSET_PAGE)

    async def account_assets_many(
        self, accounts: Sequence[str], block_hash: str,
    ) -> list[list[AssetInfo] | None | ExporterError]:
        method = "chainx_getAssetsByAccount"
        raw = await self.call_many(
            method, [[account, 0, PAGE_SIZE, block_hash] for account in accounts],
        )
        results: list[Any] = []
        for account, item in zip(accounts, raw):
            if isinstance(item, ExporterError):
                results.append(item)
                continue
            try:
                page = _validate(_ASSET_PAGE, item, method)
                if page is not None and page.page_total > 1:
                    results.append(await self.account_assets(account, block_hash))
                else:
                    results.append(None if page is None else page.data)
            except (DecodeError, TransientFetchError) as e:
                results.append(e)
        return results

    async def assets(self, block_hash: str) -> list[TotalAssetInfo] | None:
        return await self._pages("chainx_getAssets", [], block_hash, _TOTAL_ASSET_PAGE)


__all__ = [
    "LedgerRpcClient",
    "RpcError",
    "SESSION_INDEX_KEY",
    "SYSTEM_EVENTS_KEY",
    "storage_key",
    "twox_128",
]
