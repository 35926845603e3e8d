"""
HTTP transport for the SOS Beacon backend

Thin aiohttp wrapper that adds the base URL, bearer-token authentication,
bounded timeouts and typed errors. Retries are opt-in and disabled by default.
"""

import asyncio
import json
from typing import Any, Callable, Dict, Optional

import aiohttp

from .logging import get_logger


class HTTPRequestError(Exception):
    """Exception raised for HTTP request errors"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ApiClient:
    """JSON HTTP client for the alert backend"""

    def __init__(self, base_url: str, timeout: float = 30, max_retries: int = 0,
                 token_provider: Optional[Callable[[], Optional[str]]] = None,
                 user_agent: str = "SOSBeacon/1.0"):
        """
        Initialize HTTP client.

        Args:
            base_url: Backend root URL, e.g. http://localhost:8000
            timeout: Request timeout in seconds
            max_retries: Retry attempts for connection errors and 5xx responses
            token_provider: Returns the bearer token to send, if any
            user_agent: User-Agent header value
        """
        self.logger = get_logger("http_client")
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.token_provider = token_provider
        self.user_agent = user_agent
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self):
        """Ensure HTTP session is created"""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                headers={
                    'User-Agent': self.user_agent,
                    'Accept': 'application/json'
                }
            )

    def _build_url(self, path: str) -> str:
        if path.startswith('http://') or path.startswith('https://'):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _auth_headers(self) -> Dict[str, str]:
        token = self.token_provider() if self.token_provider else None
        if token:
            return {'Authorization': f'Bearer {token}'}
        return {}

    async def _make_request(self, method: str, path: str,
                            params: Optional[Dict] = None,
                            data: Optional[Dict] = None,
                            retry_count: int = 0) -> Any:
        """
        Make HTTP request.

        Args:
            method: HTTP method (GET or POST)
            path: Path relative to the base URL
            params: Query parameters
            data: JSON request body
            retry_count: Current retry attempt number

        Returns:
            Decoded JSON body, or None for an empty body

        Raises:
            HTTPRequestError: If the request fails
        """
        if method not in ('GET', 'POST'):
            raise HTTPRequestError(f"Unsupported HTTP method: {method}")

        await self._ensure_session()
        url = self._build_url(path)
        self.logger.debug(f"{method} {url}")

        try:
            async with self.session.request(
                method,
                url,
                params=params,
                json=data,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers=self._auth_headers()
            ) as response:
                body = await response.text()
                if response.status >= 400:
                    raise aiohttp.ClientResponseError(
                        response.request_info,
                        response.history,
                        status=response.status,
                        message=body or response.reason or "",
                        headers=response.headers
                    )
                if not body.strip():
                    return None
                return json.loads(body)

        except aiohttp.ClientResponseError as e:
            # Don't retry on client errors (4xx)
            if 400 <= e.status < 500 or retry_count >= self.max_retries:
                raise HTTPRequestError(f"HTTP {e.status} error: {e.message}", status=e.status)

            await asyncio.sleep(2 ** retry_count)
            return await self._make_request(method, path, params, data, retry_count + 1)

        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            if retry_count >= self.max_retries:
                raise HTTPRequestError(f"Connection error: {str(e) or 'request timed out'}")

            await asyncio.sleep(2 ** retry_count)
            return await self._make_request(method, path, params, data, retry_count + 1)

        except aiohttp.ClientError as e:
            raise HTTPRequestError(f"HTTP request failed: {e}")

        except json.JSONDecodeError as e:
            raise HTTPRequestError(f"Invalid JSON response: {e}")

    async def get(self, path: str, params: Optional[Dict] = None) -> Any:
        """
        Make HTTP GET request.

        Example:
            alert = await client.get("/api/sos/active")
        """
        return await self._make_request("GET", path, params=params)

    async def post(self, path: str, data: Optional[Dict] = None) -> Any:
        """
        Make HTTP POST request with a JSON body.

        Example:
            await client.post("/api/sos/cancel", data={"sosId": "a1", "reason": "user safe"})
        """
        return await self._make_request("POST", path, data=data)

    async def close(self):
        """Close HTTP session"""
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None
