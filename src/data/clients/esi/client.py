"""Authenticated ESI network layer with rate limiting and retries."""

import asyncio
import json
import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from utils.exceptions import (
    DecodingError,
    HTTPError,
    InvalidResponseError,
    InvalidURLError,
    NonRetryableError,
    OperationCancelledError,
    TokenExpiredError,
)

from .auth import TokenProvider
from .endpoints import AssetsEndpoints, UniverseEndpoints
from .rate_limit import RateLimiter
from .retry import RequestRetrier

if TYPE_CHECKING:
    from utils.progress_callback import CancelToken

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Constants
HTTP_TIMEOUT = 30.0
DEFAULT_BASE_URL = "https://esi.evetech.net/latest"
HTTP_STATUS_UNAUTHORIZED = 401
HTTP_STATUS_NOT_FOUND = 404
PAGE_NOT_FOUND_KEYWORD = "Requested page does not exist"
DEFAULT_PAGE_CONCURRENCY = 3
DEFAULT_PAGE_ROUND_DELAY = 0.1


class NetworkFetcher:
    """Issues authenticated ESI requests through the shared rate limiter.

    Every request is executed by the RequestRetrier, which owns the
    per-attempt timeouts and backoff. Each attempt, retries included, first
    waits for permission from the process-wide RateLimiter. Endpoint
    namespaces (``assets``, ``universe``) return typed Pydantic models.

    Example:
        ```python
        fetcher = NetworkFetcher(tokens, RateLimiter(), RequestRetrier())
        assets = await fetcher.assets.get_assets(character_id)
        structure = await fetcher.universe.get_structure_info(structure_id, character_id)
        await fetcher.close()
        ```
    """

    def __init__(
        self,
        token_provider: TokenProvider | None,
        rate_limiter: RateLimiter,
        retrier: RequestRetrier,
        base_url: str = DEFAULT_BASE_URL,
        datasource: str | None = "tranquility",
        compatibility_date: str | None = None,
        user_agent: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        page_concurrency: int = DEFAULT_PAGE_CONCURRENCY,
        page_round_delay: float = DEFAULT_PAGE_ROUND_DELAY,
    ):
        """Initialize the fetcher.

        Args:
            token_provider: Source of bearer tokens (None for public-only use)
            rate_limiter: Shared token bucket
            retrier: Retry policy applied to every request
            base_url: ESI base URL
            datasource: ESI datasource query parameter
            compatibility_date: Value for the X-Compatibility-Date header
            user_agent: Value for the User-Agent header
            http_client: Pre-built httpx client (tests inject a MockTransport)
            page_concurrency: Pages fetched concurrently per round
            page_round_delay: Pause between page rounds in seconds
        """
        self.token_provider = token_provider
        self.rate_limiter = rate_limiter
        self.retrier = retrier
        self.base_url = base_url.rstrip("/")
        self.datasource = datasource
        self.compatibility_date = compatibility_date
        self.user_agent = user_agent
        self.page_concurrency = max(1, page_concurrency)
        self.page_round_delay = page_round_delay

        self._http_client = http_client
        self._owns_http_client = http_client is None

        self.assets = AssetsEndpoints(self)
        self.universe = UniverseEndpoints(self)

    def _initialize_http_client(self) -> httpx.AsyncClient:
        """Initialize HTTP client with default headers."""
        if self._http_client is None:
            default_headers = {"Accept": "application/json"}
            if self.compatibility_date:
                default_headers["X-Compatibility-Date"] = str(self.compatibility_date)
            if self.user_agent:
                default_headers["User-Agent"] = self.user_agent
            self._http_client = httpx.AsyncClient(
                timeout=HTTP_TIMEOUT, headers=default_headers
            )
        return self._http_client

    def build_url(self, path: str) -> str:
        """Join an API path onto the base URL.

        Raises:
            InvalidURLError: If the path or resulting URL is malformed
        """
        if not path.startswith("/"):
            raise InvalidURLError(f"ESI path must start with '/': {path!r}")
        url = f"{self.base_url}{path}"
        try:
            parsed = httpx.URL(url)
        except httpx.InvalidURL as e:
            raise InvalidURLError(f"Invalid ESI URL {url!r}: {e}") from e
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise InvalidURLError(f"Invalid ESI URL {url!r}")
        return url

    async def _auth_headers(self, owner_id: int | None) -> dict[str, str]:
        if owner_id is None:
            return {}
        if self.token_provider is None:
            raise TokenExpiredError(owner_id)
        token = await self.token_provider.get_access_token(owner_id)
        return {"Authorization": f"Bearer {token}"}

    async def _send(
        self,
        method: str,
        url: str,
        params: dict[str, Any],
        headers: dict[str, str],
        json_body: Any,
    ) -> httpx.Response:
        """Send a single HTTP request, raising HTTPError for error statuses."""
        client = self._initialize_http_client()
        response = await client.request(
            method,
            url,
            params=params,
            headers=headers,
            json=json_body,
        )
        if response.status_code >= 400:
            raise HTTPError(response.status_code, response.text)
        return response

    def _parse_response_data(
        self, response: httpx.Response, method: str, url: str
    ) -> tuple[Any, dict]:
        """Parse a JSON response.

        Returns:
            Tuple of (parsed_data, normalized_headers)

        Raises:
            InvalidResponseError: If the body is not valid JSON
        """
        data = None
        if response.content:
            try:
                data = response.json()
            except (ValueError, json.JSONDecodeError) as e:
                preview = response.text[:200] if response.text else "<empty>"
                logger.warning(
                    "Failed to parse JSON response for %s %s (status=%d): %s. "
                    "Response preview: %s",
                    method,
                    url,
                    response.status_code,
                    e,
                    preview,
                )
                raise InvalidResponseError(
                    f"Malformed JSON from {method} {url}: {e}"
                ) from e

        headers_dict = {k.lower(): v for k, v in response.headers.items()}
        return data, headers_dict

    async def request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        json_body: Any = None,
        owner_id: int | None = None,
        no_retry_keywords: Iterable[str] = (),
    ) -> tuple[Any, dict]:
        """Generic request method with rate limiting and retries.

        Args:
            method: HTTP method
            path: API path (e.g., /characters/{character_id}/assets/)
            params: Query parameters
            json_body: JSON body for POST requests
            owner_id: Character ID for authenticated endpoints (None for public)
            no_retry_keywords: Body substrings that abort without retrying

        Returns:
            Tuple of (response_data, response_headers)

        Raises:
            InvalidURLError: If the URL cannot be built
            TokenExpiredError: If the owner has no valid token or ESI rejects it
            NonRetryableError: If the error body contains a non-retryable keyword
            MaxRetriesExceededError: If every attempt failed transiently
            HTTPError: For other error statuses
            InvalidResponseError: If the body is malformed
        """
        url = self.build_url(path)
        headers = await self._auth_headers(owner_id)

        request_params = dict(params or {})
        if self.datasource:
            request_params.setdefault("datasource", self.datasource)

        logger.debug(
            "Sending HTTP request: %s %s (owner=%s) Authorization=%s",
            method,
            url,
            owner_id,
            "present" if "Authorization" in headers else "missing",
        )

        try:
            response = await self.retrier.execute(
                lambda: self._send(method, url, request_params, headers, json_body),
                no_retry_keywords=no_retry_keywords,
                description=f"{method} {path}",
                before_attempt=self.rate_limiter.wait_for_permission,
            )
        except HTTPError as e:
            if e.status == HTTP_STATUS_UNAUTHORIZED and owner_id is not None:
                raise TokenExpiredError(owner_id) from e
            raise

        return self._parse_response_data(response, method, url)

    async def fetch_entity(
        self,
        path: str,
        model: type[ModelT],
        owner_id: int | None = None,
        no_retry_keywords: Iterable[str] = (),
    ) -> ModelT:
        """Fetch a single entity and validate it into ``model``.

        Raises:
            DecodingError: If the payload does not match the model
        """
        data, _ = await self.request(
            "GET", path, owner_id=owner_id, no_retry_keywords=no_retry_keywords
        )
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise DecodingError(
                f"Unexpected {model.__name__} payload from {path}: {e}"
            ) from e

    async def post(
        self,
        path: str,
        json_body: Any,
        owner_id: int | None = None,
        no_retry_keywords: Iterable[str] = (),
    ) -> Any:
        """POST a JSON body and return the decoded response."""
        data, _ = await self.request(
            "POST",
            path,
            json_body=json_body,
            owner_id=owner_id,
            no_retry_keywords=no_retry_keywords,
        )
        return data

    async def _fetch_page(
        self, path: str, page: int, owner_id: int | None
    ) -> tuple[list, dict]:
        try:
            data, headers = await self.request(
                "GET",
                path,
                params={"page": page},
                owner_id=owner_id,
                no_retry_keywords=(PAGE_NOT_FOUND_KEYWORD,),
            )
        except NonRetryableError as e:
            if e.keyword == PAGE_NOT_FOUND_KEYWORD:
                logger.debug("Page %d of %s does not exist", page, path)
                return [], {}
            raise
        except HTTPError as e:
            if e.status == HTTP_STATUS_NOT_FOUND:
                logger.debug("Page %d of %s returned 404", page, path)
                return [], {}
            raise
        if not isinstance(data, list):
            if data is not None:
                raise InvalidResponseError(
                    f"Expected a list for page {page} of {path}, got {type(data).__name__}"
                )
            return [], headers
        return data, headers

    async def fetch_paginated(
        self,
        path: str,
        owner_id: int | None = None,
        on_page: Callable[[int], None] | None = None,
        cancel_token: "CancelToken | None" = None,
    ) -> list[Any]:
        """Fetch every page of a list endpoint and aggregate the records.

        Pages are requested in concurrent rounds of ``page_concurrency``.
        Fetching stops after a round that contains an empty page (including a
        "page does not exist" response or a plain 404) or a page shorter than
        the first one, or once the X-Pages total has been reached. All members
        of a round finish before the round is evaluated; the first failure is
        then raised.

        Args:
            path: API path of the list endpoint
            owner_id: Character ID for authenticated endpoints
            on_page: Called with the page number after each non-empty page
            cancel_token: Checked before each round

        Returns:
            All records, in page order

        Raises:
            OperationCancelledError: If ``cancel_token`` fired between rounds
        """
        pages: dict[int, list] = {}
        page_size: int | None = None
        total_pages: int | None = None
        current = 1

        while True:
            round_pages = [
                page
                for page in range(current, current + self.page_concurrency)
                if total_pages is None or page <= total_pages
            ]
            if not round_pages:
                break
            if cancel_token is not None and cancel_token.is_cancelled:
                raise OperationCancelledError(
                    f"Paged fetch of {path} cancelled before page {current}"
                )

            results = await asyncio.gather(
                *(self._fetch_page(path, page, owner_id) for page in round_pages),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result

            finished = False
            for page, (data, headers) in zip(round_pages, results, strict=True):
                x_pages = headers.get("x-pages")
                if total_pages is None and x_pages:
                    try:
                        total_pages = int(x_pages)
                    except (TypeError, ValueError):
                        logger.debug("Ignoring malformed X-Pages header: %r", x_pages)

                if not data:
                    finished = True
                    continue

                pages[page] = data
                if page_size is None:
                    page_size = len(data)
                elif len(data) < page_size:
                    finished = True
                if on_page is not None:
                    on_page(page)

            if finished or (total_pages is not None and round_pages[-1] >= total_pages):
                break

            current += self.page_concurrency
            if self.page_round_delay > 0:
                await asyncio.sleep(self.page_round_delay)

        records = [record for page in sorted(pages) for record in pages[page]]
        logger.info(
            "Fetched %d records across %d pages from %s", len(records), len(pages), path
        )
        return records

    def get_rate_limit_status(self) -> dict:
        """Get current rate limit status."""
        return self.rate_limiter.get_status()

    async def close(self) -> None:
        """Close the client and cleanup resources."""
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None
