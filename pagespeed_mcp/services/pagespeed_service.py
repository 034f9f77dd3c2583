# pagespeed_mcp/services/pagespeed_service.py
import asyncio
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from pagespeed_mcp.core.config import SERVER_NAME, SERVER_VERSION, Settings
from pagespeed_mcp.core.logging import get_request_logger, new_correlation_id
from pagespeed_mcp.errors import UpstreamClientError, UpstreamTransientError
from pagespeed_mcp.models import AnalysisRequest, FieldDataRequest
from pagespeed_mcp.services.cache import ResponseCache, crux_cache_key, psi_cache_key

API_ENDPOINT = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
CRUX_ENDPOINT = "https://chromeuxreport.googleapis.com/v1/records:queryRecord"
USER_AGENT = f"{SERVER_NAME}/{SERVER_VERSION}"

# Backoff between lab-analysis attempts: 1s, 2s, 4s ... capped at 10s
DEFAULT_BACKOFF = wait_exponential(multiplier=1, min=1, max=10)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"].get("message", response.text[:500])
    return response.text[:500]


def _raise_for_status(response: httpx.Response, api: str) -> None:
    """Maps an unsuccessful upstream status onto the retryable / non-retryable errors."""
    if response.is_success:
        return
    message = f"{api} API error: {response.status_code} {response.reason_phrase} - {_error_detail(response)}"
    if 400 <= response.status_code < 500:
        raise UpstreamClientError(message, status_code=response.status_code)
    raise UpstreamTransientError(message, status_code=response.status_code)


class PageSpeedClient:
    """
    Mediates every call to the PageSpeed Insights and CrUX APIs.

    Responses are cached per request shape, simultaneous upstream calls are
    bounded by a semaphore, each attempt has its own timeout and the
    lab-analysis path retries transient failures with exponential backoff.
    """

    def __init__(
        self,
        settings: Settings,
        cache: ResponseCache,
        http_client: Optional[httpx.AsyncClient] = None,
        backoff: wait_base = DEFAULT_BACKOFF,
    ):
        self.api_key = settings.GOOGLE_API_KEY
        self.timeout = settings.timeout_seconds
        self.retry_attempts = settings.RETRY_ATTEMPTS
        self.cache_ttl = settings.CACHE_TTL
        self.cache = cache
        self.backoff = backoff
        self.limiter = asyncio.Semaphore(settings.MAX_CONCURRENCY)
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(headers={"User-Agent": USER_AGENT})

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    async def analyze_page_speed(
        self, request: AnalysisRequest, correlation_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Runs a Lighthouse analysis through the PageSpeed Insights API.

        Args:
            request: The validated analysis request.
            correlation_id: Identifier tying log lines to one tool call.

        Returns:
            The parsed JSON response as a dictionary.

        Raises:
            UpstreamClientError: If the API rejected the request (4xx).
            UpstreamTransientError: If every attempt failed with a timeout,
                transport error or 5xx.
        """
        logger = get_request_logger(correlation_id or new_correlation_id(), "analyze_page_speed")
        cache_key = psi_cache_key(request.url, request.strategy, request.category, request.locale)

        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("psi_cache_hit", url=request.url)
            return cached

        params = [
            ("url", request.url),
            ("key", self.api_key),
            ("strategy", request.strategy),
            ("locale", request.locale),
        ]
        params.extend(("category", category) for category in request.category)

        logger.info("psi_analysis_started", url=request.url, strategy=request.strategy)
        async with self.limiter:
            data = await self._get_with_retry(params, logger)

        self.cache.set(cache_key, data, ttl=self.cache_ttl)
        return data

    async def _get_with_retry(self, params, logger) -> Dict[str, Any]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts + 1),
            wait=self.backoff,
            retry=retry_if_exception_type(UpstreamTransientError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                number = attempt.retry_state.attempt_number
                logger.debug("psi_request", attempt=number)
                try:
                    return await self._get_once(params)
                except (UpstreamTransientError, UpstreamClientError) as e:
                    logger.warning("psi_request_failed", attempt=number, error=str(e))
                    raise

    async def _get_once(self, params) -> Dict[str, Any]:
        try:
            # wait_for bounds the whole attempt, httpx only bounds each socket operation
            response = await asyncio.wait_for(
                self._http.get(API_ENDPOINT, params=params, timeout=self.timeout), self.timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise UpstreamTransientError(f"PSI request timed out after {self.timeout:g}s") from e
        except httpx.RequestError as e:
            raise UpstreamTransientError(f"Network error while calling PageSpeed API: {e}") from e

        _raise_for_status(response, "PSI")
        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamTransientError("Invalid JSON returned by PageSpeed API") from e

        if isinstance(data, dict) and "error" in data:
            error = data["error"]
            message = error.get("message", "Unknown API error") if isinstance(error, dict) else str(error)
            raise UpstreamClientError(f"PageSpeed API Error: {message}")
        return data

    async def get_crux_data(
        self, request: FieldDataRequest, correlation_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Queries the Chrome UX Report for real-user field data.

        A URL without enough traffic has no record; that comes back as an
        empty dictionary rather than an error. Only one attempt is made.

        Raises:
            UpstreamClientError: If the API rejected the request.
            UpstreamTransientError: On timeout, transport error or 5xx.
        """
        logger = get_request_logger(correlation_id or new_correlation_id(), "crux_summary")
        cache_key = crux_cache_key(request.url, request.form_factor)

        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("crux_cache_hit", url=request.url)
            return cached

        body: Dict[str, Any] = {"url": request.url}
        if request.form_factor:
            body["formFactor"] = request.form_factor

        logger.info("crux_lookup_started", url=request.url, form_factor=request.form_factor)
        async with self.limiter:
            try:
                response = await asyncio.wait_for(
                    self._http.post(CRUX_ENDPOINT, params={"key": self.api_key}, json=body, timeout=self.timeout),
                    self.timeout,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                logger.warning("crux_request_failed", error="timeout")
                raise UpstreamTransientError(f"CrUX request timed out after {self.timeout:g}s") from e
            except httpx.RequestError as e:
                logger.warning("crux_request_failed", error=str(e))
                raise UpstreamTransientError(f"Network error while calling CrUX API: {e}") from e

        if response.status_code == 404:
            logger.info("crux_no_record", url=request.url)
            data: Dict[str, Any] = {}
        else:
            _raise_for_status(response, "CrUX")
            try:
                data = response.json()
            except ValueError as e:
                raise UpstreamTransientError("Invalid JSON returned by CrUX API") from e

        self.cache.set(cache_key, data, ttl=self.cache_ttl)
        logger.info("crux_request_successful", url=request.url, has_record="record" in data)
        return data
