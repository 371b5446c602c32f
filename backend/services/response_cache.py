"""Per-route HTTP response caching on top of TTLCache.

Routes opt in at registration time:

    router = APIRouter(route_class=CachedRoute)

    @router.get("/genres")
    @cache_for(3600)
    async def genres(...): ...

CachedRoute wraps the endpoint's request -> response callable and hands it to
the app's ResponseCache (``app.state.response_cache``), which answers hits
from memory and stores the body of every miss once the endpoint returns.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from fastapi import Request, Response
from fastapi.routing import APIRoute

from errors import HANDLED_ERRORS, error_response
from services.cache import DEFAULT_SWEEP_INTERVAL_SECONDS, CacheSweeper, TTLCache

logger = logging.getLogger(__name__)

CACHE_TTL_ATTR = "cache_ttl_seconds"
CACHEABLE_METHODS = frozenset({"GET"})

Endpoint = Callable[[Request], Awaitable[Response]]


@dataclass(frozen=True)
class CachedResponse:
    body: bytes
    status_code: int
    media_type: str | None

    def to_response(self) -> Response:
        response = Response(content=self.body, status_code=self.status_code, media_type=self.media_type)
        response.headers["X-Cache"] = "HIT"
        return response


def cache_key(request: Request) -> str:
    """Method plus the raw request target, exactly as received. No canonicalization."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        path = request.scope["path"]
    query = request.scope.get("query_string", b"").decode("latin-1")
    key = f"{request.method} {path}"
    if query:
        key += f"?{query}"
    return key


def cache_for(ttl_seconds: float):
    """Mark an endpoint as cacheable for ``ttl_seconds``. Needs ``route_class=CachedRoute``."""

    def decorator(endpoint):
        setattr(endpoint, CACHE_TTL_ATTR, ttl_seconds)
        return endpoint

    return decorator


class ResponseCache:
    """Process-wide response cache: store, sweeper and the read/write policy.

    Without coalescing, two concurrent misses for one key both run the
    endpoint and the later write wins. With ``coalesce=True`` the second miss
    waits for the first one's result instead.
    """

    def __init__(
        self,
        store: TTLCache | None = None,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        coalesce: bool = False,
        cache_error_responses: bool = True,
    ):
        self.store = store if store is not None else TTLCache()
        self.sweeper = CacheSweeper(self.store, sweep_interval_seconds)
        self.coalesce = coalesce
        self.cache_error_responses = cache_error_responses
        self._inflight: dict[str, asyncio.Future] = {}

    async def start(self) -> None:
        self.sweeper.start()

    async def stop(self) -> None:
        await self.sweeper.stop()

    async def serve(self, request: Request, endpoint: Endpoint, ttl_seconds: float) -> Response:
        if request.method not in CACHEABLE_METHODS:
            return await endpoint(request)

        key = cache_key(request)
        cached = self.store.get(key)
        if cached is not None:
            logger.debug("Cache hit: %s", key)
            return cached.to_response()

        logger.debug("Cache miss: %s", key)
        if not self.coalesce:
            response, _ = await self._fill(key, request, endpoint, ttl_seconds)
            return response

        pending = self._inflight.get(key)
        if pending is not None:
            payload = await asyncio.shield(pending)
            if payload is not None:
                return payload.to_response()
            # Leader failed or produced nothing cacheable
            response, _ = await self._fill(key, request, endpoint, ttl_seconds)
            return response

        future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        payload = None
        try:
            response, payload = await self._fill(key, request, endpoint, ttl_seconds)
            return response
        finally:
            del self._inflight[key]
            future.set_result(payload)

    async def _fill(
        self, key: str, request: Request, endpoint: Endpoint, ttl_seconds: float
    ) -> tuple[Response, CachedResponse | None]:
        try:
            response = await endpoint(request)
        except HANDLED_ERRORS as exc:
            # Error bodies follow the same caching policy as any other body
            response = error_response(exc)
        payload = self._payload_for(response)
        if payload is not None:
            self.store.set(key, payload, ttl_seconds)
        response.headers["X-Cache"] = "MISS"
        return response, payload

    def _payload_for(self, response: Response) -> CachedResponse | None:
        body = getattr(response, "body", None)
        if body is None:
            # Streaming and file responses have no materialized body
            return None
        if not self.cache_error_responses and not 200 <= response.status_code < 300:
            return None
        return CachedResponse(
            body=bytes(body),
            status_code=response.status_code,
            media_type=response.media_type or response.headers.get("content-type"),
        )


class CachedRoute(APIRoute):
    """APIRoute that routes endpoints marked with ``cache_for`` through the response cache."""

    def get_route_handler(self) -> Endpoint:
        handler = super().get_route_handler()
        ttl_seconds = getattr(self.endpoint, CACHE_TTL_ATTR, None)
        if ttl_seconds is None:
            return handler

        async def cached_handler(request: Request) -> Response:
            response_cache: ResponseCache = request.app.state.response_cache
            return await response_cache.serve(request, handler, ttl_seconds)

        return cached_handler
