"""Gateway to the ZTM Gdansk open data feed with per-resource TTL caching."""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, TypeVar

import httpx
import structlog
from opentelemetry.trace import SpanKind
from pydantic import BaseModel, ValidationError

from app.core.cache import (
    ALL_DEPARTURES_CACHE_KEY,
    STOPS_CACHE_KEY,
    FeedCache,
    departures_cache_key,
)
from app.core.config import Settings
from app.core.errors import UpstreamErrorKind, ZtmServiceError
from app.core.telemetry import service_span
from app.schemas.ztm import AllDeparturesResponse, DeparturesResponse, StopsResponse

logger = structlog.get_logger(__name__)

DocumentT = TypeVar("DocumentT", bound=BaseModel)

# Default cache TTL / request timeout per resource
DEFAULT_STOPS_TTL = timedelta(hours=6)
DEFAULT_STOPS_TIMEOUT = 10.0
DEFAULT_DEPARTURES_TTL = timedelta(seconds=20)
DEFAULT_DEPARTURES_TIMEOUT = 8.0
DEFAULT_ALL_DEPARTURES_TTL = timedelta(seconds=20)
DEFAULT_ALL_DEPARTURES_TIMEOUT = 15.0

PEER_SERVICE = "ztm-gdansk"


@dataclass(frozen=True)
class FeedPolicy:
    """Cache lifetime and request timeout (seconds) for one upstream resource."""

    ttl: timedelta
    timeout: float


class ZtmService:
    """
    Fetches stop and departure documents from the ZTM feed.

    Every read goes cache-first; on a miss the document is fetched with a
    bounded timeout, validated against its schema and cached for the
    resource's TTL. Failures raise ``ZtmServiceError`` classified as TIMEOUT,
    UPSTREAM_ERROR or INVALID_RESPONSE. Nothing is retried.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: FeedCache,
        *,
        stops_url: str,
        departures_url: str,
        stops_policy: FeedPolicy = FeedPolicy(DEFAULT_STOPS_TTL, DEFAULT_STOPS_TIMEOUT),
        departures_policy: FeedPolicy = FeedPolicy(DEFAULT_DEPARTURES_TTL, DEFAULT_DEPARTURES_TIMEOUT),
        all_departures_policy: FeedPolicy = FeedPolicy(DEFAULT_ALL_DEPARTURES_TTL, DEFAULT_ALL_DEPARTURES_TIMEOUT),
    ) -> None:
        """
        Initialize the gateway.

        Args:
            client: Shared HTTP client (owned by the application lifespan)
            cache: Feed cache shared by all requests
            stops_url: Stop directory document URL
            departures_url: Departures endpoint URL
            stops_policy: TTL/timeout for the stop directory
            departures_policy: TTL/timeout for single-stop departures
            all_departures_policy: TTL/timeout for the all-stops departures document
        """
        self.client = client
        self.cache = cache
        self.stops_url = stops_url
        self.departures_url = departures_url
        self.stops_policy = stops_policy
        self.departures_policy = departures_policy
        self.all_departures_policy = all_departures_policy

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient, cache: FeedCache, settings: Settings) -> "ZtmService":
        """Build a gateway using URLs and TTL/timeout values from settings."""
        return cls(
            client,
            cache,
            stops_url=settings.ZTM_STOPS_URL,
            departures_url=settings.ZTM_DEPARTURES_URL,
            stops_policy=FeedPolicy(
                timedelta(seconds=settings.ZTM_STOPS_CACHE_TTL_SECONDS),
                settings.ZTM_STOPS_TIMEOUT_SECONDS,
            ),
            departures_policy=FeedPolicy(
                timedelta(seconds=settings.ZTM_DEPARTURES_CACHE_TTL_SECONDS),
                settings.ZTM_DEPARTURES_TIMEOUT_SECONDS,
            ),
            all_departures_policy=FeedPolicy(
                timedelta(seconds=settings.ZTM_ALL_DEPARTURES_CACHE_TTL_SECONDS),
                settings.ZTM_ALL_DEPARTURES_TIMEOUT_SECONDS,
            ),
        )

    # ==================== Public Reads ====================

    async def get_stops(self, *, ttl: timedelta | None = None, timeout: float | None = None) -> StopsResponse:
        """
        Get the stop directory.

        Args:
            ttl: Override cache TTL for this call
            timeout: Override request timeout (seconds) for this call

        Returns:
            Validated stop directory

        Raises:
            ZtmServiceError: On timeout, upstream failure or invalid response
        """
        return await self._get_document(
            resource="stops",
            cache_key=STOPS_CACHE_KEY,
            url=self.stops_url,
            params=None,
            model=StopsResponse,
            policy=self.stops_policy,
            ttl=ttl,
            timeout=timeout,
        )

    async def get_departures(
        self,
        stop_id: int,
        *,
        ttl: timedelta | None = None,
        timeout: float | None = None,
    ) -> DeparturesResponse:
        """
        Get departures for one stop. Each stop id has its own cache slot.

        Args:
            stop_id: External stop identifier
            ttl: Override cache TTL for this call
            timeout: Override request timeout (seconds) for this call

        Returns:
            Validated departures document

        Raises:
            ZtmServiceError: On timeout, upstream failure or invalid response
        """
        return await self._get_document(
            resource="departures",
            cache_key=departures_cache_key(stop_id),
            url=self.departures_url,
            params={"stopId": str(stop_id)},
            model=DeparturesResponse,
            policy=self.departures_policy,
            ttl=ttl,
            timeout=timeout,
        )

    async def get_all_departures(
        self,
        *,
        ttl: timedelta | None = None,
        timeout: float | None = None,
    ) -> AllDeparturesResponse:
        """
        Get departures for every stop.

        Args:
            ttl: Override cache TTL for this call
            timeout: Override request timeout (seconds) for this call

        Returns:
            Departures documents keyed by stop id

        Raises:
            ZtmServiceError: On timeout, upstream failure or invalid response
        """
        return await self._get_document(
            resource="all-departures",
            cache_key=ALL_DEPARTURES_CACHE_KEY,
            url=self.departures_url,
            params=None,
            model=AllDeparturesResponse,
            policy=self.all_departures_policy,
            ttl=ttl,
            timeout=timeout,
        )

    # ==================== Internals ====================

    async def _get_document(
        self,
        *,
        resource: str,
        cache_key: str,
        url: str,
        params: dict[str, str] | None,
        model: type[DocumentT],
        policy: FeedPolicy,
        ttl: timedelta | None,
        timeout: float | None,
    ) -> DocumentT:
        """Cache-first fetch, validate and store of one document."""
        entry = await self.cache.get(cache_key)
        if entry is not None:
            logger.debug("ztm_cache_hit", resource=resource, cache_key=cache_key)
            document: DocumentT = entry.value
            return document

        payload = await self._fetch_json(resource, url, params, timeout if timeout is not None else policy.timeout)

        try:
            document = model.model_validate(payload)
        except ValidationError as e:
            logger.warning(
                "ztm_schema_mismatch",
                resource=resource,
                error_count=e.error_count(),
                first_error=e.errors()[0]["msg"] if e.error_count() else None,
            )
            raise ZtmServiceError(
                UpstreamErrorKind.INVALID_RESPONSE,
                f"Upstream {resource} schema mismatch",
            ) from e

        effective_ttl = ttl if ttl is not None else policy.ttl
        await self.cache.set(cache_key, document, effective_ttl)
        logger.info(
            "ztm_document_fetched_and_cached",
            resource=resource,
            cache_key=cache_key,
            ttl_seconds=effective_ttl.total_seconds(),
        )
        return document

    async def _fetch_json(
        self,
        resource: str,
        url: str,
        params: dict[str, str] | None,
        timeout: float,
    ) -> Any:  # noqa: ANN401
        """
        GET a JSON document, cancelling the request once ``timeout`` seconds pass.

        Raises:
            ZtmServiceError: TIMEOUT if cancelled by the deadline, UPSTREAM_ERROR on
                transport failure or non-2xx status, INVALID_RESPONSE on unparsable JSON
        """
        with service_span(
            f"ztm.fetch_{resource}",
            PEER_SERVICE,
            kind=SpanKind.CLIENT,
            **{"http.url": url, "ztm.timeout_seconds": timeout},
        ) as span:
            try:
                async with asyncio.timeout(timeout):
                    response = await self.client.get(url, params=params, timeout=timeout)
            except (TimeoutError, httpx.TimeoutException) as e:
                logger.warning("ztm_request_timed_out", resource=resource, timeout_seconds=timeout)
                raise ZtmServiceError(UpstreamErrorKind.TIMEOUT, "Upstream request timed out") from e
            except httpx.HTTPError as e:
                logger.warning("ztm_request_failed", resource=resource, error=str(e))
                raise ZtmServiceError(UpstreamErrorKind.UPSTREAM_ERROR, "Failed to fetch upstream data") from e

            span.set_attribute("http.status_code", response.status_code)
            if not response.is_success:
                logger.warning("ztm_upstream_http_error", resource=resource, status_code=response.status_code)
                raise ZtmServiceError(
                    UpstreamErrorKind.UPSTREAM_ERROR,
                    f"Upstream returned HTTP {response.status_code}",
                )

            try:
                return response.json()
            except ValueError as e:
                logger.warning("ztm_invalid_json", resource=resource)
                raise ZtmServiceError(UpstreamErrorKind.INVALID_RESPONSE, "Upstream returned invalid JSON") from e
