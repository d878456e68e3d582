"""EndpointPool: ordered provider endpoints with failover, bounded retry and one auth strategy each."""

import logging
from typing import Any
from urllib.parse import urlsplit

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from contribledger.exceptions import JsonRpcError, NotFoundError, RpcError
from contribledger.infra.http.auth import AuthStrategy, NoAuth
from contribledger.infra.http.rate_limited_client import RateLimitedClient

logger = logging.getLogger(__name__)

# JSON-RPC error codes that mean "this provider is struggling", not "the node answered"
TRANSIENT_RPC_CODES = {-32005, -32603, 429}


class _EndpointFailure(Exception):
    """One endpoint failed transiently; the pool moves on to the next."""


class Endpoint:
    def __init__(self, url: str, auth: AuthStrategy | None = None) -> None:
        self.url = url.rstrip("/")
        self.auth = auth or NoAuth()

    @property
    def label(self) -> str:
        """Host only, safe to log (keys may live in the URL path or query)."""
        return urlsplit(self.url).netloc or "endpoint"

    def url_for(self, path: str) -> str:
        if not path:
            return self.url
        return f"{self.url}/{path.lstrip('/')}"


class EndpointPool:
    """Calls endpoints in order, returning the first success.

    404 on a REST call raises NotFoundError immediately (no failover, no retry).
    A JSON-RPC error object raises JsonRpcError immediately unless its code is transient.
    Transport errors, timeouts, 401/403/429/5xx and unparsable bodies fail over to the
    next endpoint; when every endpoint fails, the whole pass is retried with
    exponential backoff and finally an aggregated RpcError is raised.
    """

    def __init__(
        self,
        name: str,
        endpoints: list[Endpoint],
        http_client: RateLimitedClient,
        timeout: float = 15.0,
        retries: int = 2,
        backoff_seconds: float = 0.3,
        json_kwargs: dict | None = None,
    ) -> None:
        if not endpoints:
            raise ValueError(f"EndpointPool {name!r} needs at least one endpoint")
        self.name = name
        self._endpoints = endpoints
        self._http = http_client
        self._timeout = timeout
        self._retries = max(0, retries)
        self._backoff = max(0.0, backoff_seconds)
        self._json_kwargs = json_kwargs or {}

    @property
    def endpoints(self) -> list[Endpoint]:
        return list(self._endpoints)

    async def get(self, path: str = "", params: dict | None = None) -> Any:
        return await self._request("GET", path, params=params)

    async def post(self, path: str = "", json: dict | list | None = None) -> Any:
        return await self._request("POST", path, json=json)

    async def rpc(self, method: str, params: list | None = None) -> Any:
        """JSON-RPC 2.0 call; returns the ``result`` field."""
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params or []}
        return await self._request("POST", "", json=payload, rpc=True, what=method)

    async def _request(
        self,
        verb: str,
        path: str,
        params: dict | None = None,
        json: dict | list | None = None,
        rpc: bool = False,
        what: str | None = None,
    ) -> Any:
        what = what or f"{verb} {path or '/'}"
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(RpcError),
            stop=stop_after_attempt(self._retries + 1),
            wait=wait_exponential(multiplier=self._backoff, min=self._backoff, max=max(self._backoff * 8, self._backoff)),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info("%s: retrying %s (attempt %d)", self.name, what, attempt.retry_state.attempt_number)
                return await self._one_pass(verb, path, params, json, rpc, what)
        raise RpcError(f"{self.name}: {what} failed")  # pragma: no cover

    async def _one_pass(
        self,
        verb: str,
        path: str,
        params: dict | None,
        json: dict | list | None,
        rpc: bool,
        what: str,
    ) -> Any:
        for endpoint in self._endpoints:
            try:
                return await self._send(endpoint, verb, path, params, json, rpc)
            except _EndpointFailure as e:
                logger.warning("%s: %s via %s failed: %s", self.name, what, endpoint.label, e)
        raise RpcError(f"{self.name}: {what} failed on all {len(self._endpoints)} endpoint(s)")

    async def _send(
        self,
        endpoint: Endpoint,
        verb: str,
        path: str,
        params: dict | None,
        json: dict | list | None,
        rpc: bool,
    ) -> Any:
        headers: dict[str, str] = {"Accept": "application/json"}
        query: dict[str, str] = dict(params or {})
        endpoint.auth.apply(headers, query)
        url = endpoint.url_for(path)

        try:
            if verb == "GET":
                resp = await self._http.get(url, params=query or None, headers=headers, timeout=self._timeout)
            else:
                headers["Content-Type"] = "application/json"
                resp = await self._http.post(url, json=json, params=query or None, headers=headers, timeout=self._timeout)
        except httpx.HTTPError as e:
            raise _EndpointFailure(type(e).__name__) from e

        status = resp.status_code
        if status == 404 and not rpc:
            raise NotFoundError(f"{self.name}: not found")
        if status >= 400:
            raise _EndpointFailure(f"HTTP {status}")

        try:
            data = resp.json(**self._json_kwargs)
        except ValueError as e:
            raise _EndpointFailure("invalid JSON body") from e

        if not rpc:
            return data

        if not isinstance(data, dict):
            raise _EndpointFailure("malformed JSON-RPC response")
        error = data.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            if code in TRANSIENT_RPC_CODES:
                raise _EndpointFailure(f"JSON-RPC {code}")
            raise JsonRpcError(code, message)
        return data.get("result")

    async def probe(self, verb: str = "GET", path: str = "", json: dict | list | None = None, rpc: bool = False) -> dict[str, bool]:
        """Check each endpoint once (no retry) and log which answer. Used at startup."""
        results: dict[str, bool] = {}
        for endpoint in self._endpoints:
            try:
                await self._send(endpoint, verb, path, None, json, rpc)
                results[endpoint.label] = True
                logger.info("%s: endpoint %s ok (auth=%s)", self.name, endpoint.label, endpoint.auth.describe())
            except (_EndpointFailure, NotFoundError, JsonRpcError) as e:
                results[endpoint.label] = False
                logger.warning("%s: endpoint %s probe failed: %s", self.name, endpoint.label, e)
        return results
