"""
HTTP Transport

One httpx-based transport for every call to the backing REST API, with a
configurable retry policy for idempotent requests and an ordered
primary/fallback route chain for endpoints that exist in two generations.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx

from .core.config import Settings
from .core.errors import ProviderError, TransportError

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "X-Idempotency-Key"

# Provider statuses that mean "this route is missing or broken", not "no"
_FALLBACK_STATUS_CODES = {404, 405, 501}


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for idempotent requests"""
    max_retries: int = 2
    base_delay: float = 1.0
    retry_status_codes: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})
    idempotent_methods: frozenset[str] = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.max_retries,
            base_delay=settings.retry_delay,
            retry_status_codes=frozenset(settings.retry_status_codes),
            idempotent_methods=frozenset(m.upper() for m in settings.idempotent_methods),
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (0-based)"""
        return self.base_delay * (2 ** attempt)


@dataclass(frozen=True)
class Route:
    """One way of reaching an endpoint"""
    method: str
    path: str
    idempotent: Optional[bool] = None  # None: decided by the retry policy


def provider_message(payload: Any, default: str) -> str:
    """Pull the provider's own message text out of an error body"""
    if isinstance(payload, dict):
        for key in ("message", "ResultDesc", "errorMessage", "detail", "error", "CustomerMessage"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value
    return default


class HttpTransport:
    """
    Async JSON transport over httpx.

    Timeouts and connection failures become TransportError; HTTP responses
    with status >= 400 become ProviderError carrying the provider's message.
    Idempotent requests are retried with exponential backoff.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize transport.

        Args:
            base_url: Base URL of the REST API (e.g. http://localhost:5000/api)
            timeout: Per-request timeout in seconds
            retry_policy: Retry behaviour for idempotent calls
            client: Pre-built httpx client (tests mount an ASGI app here)
            sleep: Coroutine used between retries
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self._owns_client = client is None
        self._http_client = client or httpx.AsyncClient(timeout=timeout)
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls, settings: Settings, client: Optional[httpx.AsyncClient] = None
    ) -> "HttpTransport":
        return cls(
            base_url=settings.api_base_url,
            timeout=settings.request_timeout,
            retry_policy=RetryPolicy.from_settings(settings),
            client=client,
        )

    async def close(self) -> None:
        """Close HTTP client"""
        if self._owns_client:
            await self._http_client.aclose()

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _send_once(
        self,
        method: str,
        url: str,
        json: Optional[Any],
        params: Optional[dict[str, Any]],
        headers: dict[str, str],
    ) -> httpx.Response:
        try:
            return await self._http_client.request(
                method=method,
                url=url,
                json=json,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"{method} {url} timed out") from e
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Any] = None,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        idempotent: Optional[bool] = None,
    ) -> Any:
        """
        Make a request and return the decoded JSON body.

        Args:
            method: HTTP method
            path: Path relative to base_url, or an absolute URL
            json: JSON body
            params: Query parameters
            headers: Extra headers
            idempotent: Override the policy's method-based retry decision

        Raises:
            TransportError: network failure or timeout after retries
            ProviderError: HTTP error status from the API
        """
        method = method.upper()
        url = self._url(path)
        request_headers = {"Accept": "application/json", **(headers or {})}
        policy = self.retry_policy
        retryable = (method in policy.idempotent_methods) if idempotent is None else idempotent
        attempts = policy.max_retries + 1 if retryable else 1

        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            try:
                response = await self._send_once(method, url, json, params, request_headers)
            except TransportError as e:
                if last_attempt:
                    raise
                logger.warning(f"{e}; retrying ({attempt + 1}/{policy.max_retries})")
                await self._sleep(policy.delay_for(attempt))
                continue

            if response.status_code >= 400:
                body = self._decode(response)
                if not last_attempt and response.status_code in policy.retry_status_codes:
                    logger.warning(
                        f"{method} {url} returned {response.status_code}; "
                        f"retrying ({attempt + 1}/{policy.max_retries})"
                    )
                    await self._sleep(policy.delay_for(attempt))
                    continue
                logger.error(f"Request failed: {method} {url} {response.status_code} - {response.text}")
                raise ProviderError(
                    provider_message(body, f"Request failed with status {response.status_code}"),
                    status_code=response.status_code,
                    payload=body,
                )

            return self._decode(response)

        raise TransportError(f"{method} {url} exhausted retries")  # pragma: no cover

    async def request_with_fallback(
        self,
        routes: Sequence[Route],
        json: Optional[Any] = None,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """
        Try each route in order with the same payload (bodies are not sent
        on GET/HEAD routes).

        Falls through to the next route on transport errors and on provider
        statuses meaning the route is unavailable (404/405/501/5xx). Any other
        provider rejection is raised at once. When every route fails the most
        informative error is raised: the first ProviderError if there was
        one, else the first TransportError.
        """
        if not routes:
            raise ValueError("At least one route is required")

        errors: list[Exception] = []
        for index, route in enumerate(routes):
            try:
                return await self.request(
                    route.method,
                    route.path,
                    json=None if route.method.upper() in ("GET", "HEAD") else json,
                    params=params,
                    headers=headers,
                    idempotent=route.idempotent,
                )
            except ProviderError as e:
                status = e.status_code or 0
                if status not in _FALLBACK_STATUS_CODES and status < 500:
                    raise
                errors.append(e)
            except TransportError as e:
                errors.append(e)

            if index < len(routes) - 1:
                nxt = routes[index + 1]
                logger.warning(
                    f"{route.method} {route.path} failed ({errors[-1]}); "
                    f"falling back to {nxt.method} {nxt.path}"
                )

        provider_errors = [e for e in errors if isinstance(e, ProviderError)]
        raise (provider_errors[0] if provider_errors else errors[0])

