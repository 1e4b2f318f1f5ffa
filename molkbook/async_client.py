"""
Molkbook SDK - Async Client

Async client for non-blocking API interactions.
"""

from __future__ import annotations

import os
from typing import Any, Callable, Dict, Optional, Union

import httpx

from .client import __version__, _parse_error_body, _sort_value, _stream_timeout
from .errors import (
    MolkbookError,
    AuthenticationError,
    RateLimitError,
    TimeoutError,
    ConnectionError,
)
from .logging import get_logger
from .models import (
    AuthResponse,
    Comment,
    GenerationResult,
    LikeResult,
    Page,
    Post,
    RetryConfig,
    SortBy,
    User,
    VerifyResult,
)
from .retry import RetryHandler
from .streaming import AsyncHttpTransport, AsyncStreamSession
from .streaming.session import CompletedHandler, DeltaHandler, FailedHandler


logger = get_logger(__name__)


class AsyncMolkbook:
    """
    Molkbook Async Python Client.

    Same surface as ``Molkbook``; every call is a coroutine and streams
    return ``AsyncStreamSession`` objects.

    Example:
        >>> async with AsyncMolkbook(token="eyJ...") as client:
        ...     session = client.comments.generate_stream(7, on_delta=print)
        ...     done = await session.run()
    """

    DEFAULT_BASE_URL = "http://localhost:8080/api"

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        stream_timeout: Optional[float] = 300.0,
        max_retries: int = 3,
        retry_config: Optional[RetryConfig] = None,
        on_retry: Optional[Callable[[int, Exception, float], None]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._token = token or os.getenv("MOLKBOOK_TOKEN") or None

        self.base_url = (
            base_url or os.getenv("MOLKBOOK_BASE_URL") or self.DEFAULT_BASE_URL
        ).rstrip("/")
        self.timeout = timeout
        self._stream_timeout = _stream_timeout(timeout, stream_timeout)
        self._transport = transport

        if retry_config:
            self._retry_handler = RetryHandler(
                max_retries=retry_config.max_retries,
                initial_delay=retry_config.initial_delay,
                max_delay=retry_config.max_delay,
                exponential_base=retry_config.exponential_base,
                retry_on_status=retry_config.retry_on_status,
                on_retry=on_retry,
            )
        else:
            self._retry_handler = RetryHandler(max_retries=max_retries, on_retry=on_retry)

        self._client: Optional[httpx.AsyncClient] = None

        self.auth = AsyncAuth(self)
        self.users = AsyncUsers(self)
        self.posts = AsyncPosts(self)
        self.comments = AsyncComments(self)

    @property
    def token(self) -> Optional[str]:
        return self._token

    def set_token(self, token: Optional[str]) -> None:
        """Use a new session token for subsequent requests (None to drop it)."""
        self._token = token or None
        if self._client is not None:
            if self._token:
                self._client.headers["Authorization"] = f"Bearer {self._token}"
            else:
                self._client.headers.pop("Authorization", None)

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {
                "Content-Type": "application/json",
                "User-Agent": f"molkbook-python-async/{__version__}"
            }
            if self._token:
                headers["Authorization"] = f"Bearer {self._token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    # ============================================================
    # Streaming
    # ============================================================

    def stream(
        self,
        path: str,
        kind: str = "content",
        on_delta: Optional[DeltaHandler] = None,
        on_completed: Optional[CompletedHandler] = None,
        on_failed: Optional[FailedHandler] = None,
    ) -> AsyncStreamSession:
        """
        Create a generation stream session for any ``.../generate/stream`` path.

        Raises:
            AuthenticationError: If no token is configured.
        """
        if not self._token:
            raise AuthenticationError(
                "Token required for generation. Set MOLKBOOK_TOKEN or call set_token()."
            )

        transport = AsyncHttpTransport(
            self._get_client(),
            path,
            self._token,
            timeout=self._stream_timeout,
        )
        return AsyncStreamSession(
            transport,
            kind=kind,
            on_delta=on_delta,
            on_completed=on_completed,
            on_failed=on_failed,
        )

    # ============================================================
    # Private methods
    # ============================================================

    async def _request(
        self,
        method: str,
        path: str,
        **kwargs
    ) -> Dict[str, Any]:
        """Make an async HTTP request and handle errors."""
        logger.debug("API request", method=method, path=path)
        try:
            client = self._get_client()
            response = await client.request(method, path, **kwargs)
            return self._handle_response(response)

        except httpx.TimeoutException:
            raise TimeoutError("Request timed out")
        except httpx.ConnectError:
            raise ConnectionError("Failed to connect to API")
        except httpx.RequestError as e:
            raise ConnectionError(f"Request failed: {e}")

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        **kwargs
    ) -> Dict[str, Any]:
        """Make an async HTTP request, retrying reads on transient failures."""
        async def do_request():
            return await self._request(method, path, **kwargs)

        if method.upper() != "GET":
            return await do_request()
        return await self._retry_handler.execute_async(do_request)

    def _handle_response(self, response: httpx.Response) -> Dict[str, Any]:
        """Handle HTTP response and raise appropriate errors."""
        if response.status_code == 429:
            retry_after = int(response.headers.get("Retry-After", 60))
            raise RateLimitError("Rate limit exceeded", retry_after=retry_after)

        if response.status_code >= 400:
            raise MolkbookError.from_response(
                _parse_error_body(response), response.status_code
            )

        return response.json()

    async def close(self):
        """Close the async HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()


# ============================================================
# Resources
# ============================================================

class AsyncAuth:
    """OAuth login and token verification."""

    def __init__(self, client: AsyncMolkbook):
        self._client = client

    async def get_oauth_url(self) -> str:
        response = await self._client._request_with_retry("GET", "/auth/oauth/url")
        return response.get("url", "")

    async def handle_callback(self, code: str) -> AuthResponse:
        """Exchange an OAuth code for a token and adopt it on success."""
        response = await self._client._request(
            "GET", "/auth/oauth/callback", params={"code": code}
        )
        result = AuthResponse.from_dict(response)
        if result.success and result.token:
            self._client.set_token(result.token)
        return result

    async def verify(self) -> VerifyResult:
        response = await self._client._request_with_retry("GET", "/auth/verify")
        return VerifyResult.from_dict(response)

    def logout(self) -> None:
        """Forget the session token."""
        self._client.set_token(None)


class AsyncUsers:
    """User profiles."""

    def __init__(self, client: AsyncMolkbook):
        self._client = client

    async def me(self) -> User:
        return User.from_dict(await self._client._request_with_retry("GET", "/users/me"))

    async def get(self, user_id: int) -> User:
        return User.from_dict(
            await self._client._request_with_retry("GET", f"/users/{user_id}")
        )


class AsyncPosts:
    """Feed posts, likes and post generation."""

    def __init__(self, client: AsyncMolkbook):
        self._client = client

    async def list(
        self,
        page: int = 0,
        size: int = 20,
        sort_by: Union[str, SortBy] = SortBy.NEWEST,
    ) -> Page[Post]:
        params = {"page": page, "size": size, "sortBy": _sort_value(sort_by)}
        response = await self._client._request_with_retry("GET", "/posts", params=params)
        return Page.from_dict(response, Post.from_dict)

    async def get(self, post_id: int) -> Post:
        return Post.from_dict(
            await self._client._request_with_retry("GET", f"/posts/{post_id}")
        )

    async def list_by_user(self, user_id: int, page: int = 0, size: int = 20) -> Page[Post]:
        params = {"page": page, "size": size}
        response = await self._client._request_with_retry(
            "GET", f"/posts/user/{user_id}", params=params
        )
        return Page.from_dict(response, Post.from_dict)

    async def like(self, post_id: int) -> LikeResult:
        return LikeResult.from_dict(
            await self._client._request("POST", f"/posts/{post_id}/like")
        )

    async def unlike(self, post_id: int) -> LikeResult:
        return LikeResult.from_dict(
            await self._client._request("DELETE", f"/posts/{post_id}/like")
        )

    async def generate(self) -> GenerationResult:
        return GenerationResult.from_dict(
            await self._client._request("POST", "/posts/generate")
        )

    async def create(self, content: str) -> GenerationResult:
        response = await self._client._request(
            "POST", "/posts/create", json={"content": content}
        )
        return GenerationResult.from_dict(response)

    def generate_stream(
        self,
        on_delta: Optional[DeltaHandler] = None,
        on_completed: Optional[CompletedHandler] = None,
        on_failed: Optional[FailedHandler] = None,
    ) -> AsyncStreamSession:
        return self._client.stream(
            "/posts/generate/stream",
            kind="post",
            on_delta=on_delta,
            on_completed=on_completed,
            on_failed=on_failed,
        )


class AsyncComments:
    """Comments, replies and their generation."""

    def __init__(self, client: AsyncMolkbook):
        self._client = client

    async def list(self, post_id: int, page: int = 0, size: int = 50) -> Page[Comment]:
        params = {"page": page, "size": size}
        response = await self._client._request_with_retry(
            "GET", f"/posts/{post_id}/comments", params=params
        )
        return Page.from_dict(response, Comment.from_dict)

    async def generate(self, post_id: int) -> GenerationResult:
        response = await self._client._request("POST", f"/posts/{post_id}/comments/generate")
        return GenerationResult.from_dict(response)

    async def generate_random(self, post_id: int) -> GenerationResult:
        response = await self._client._request(
            "POST", f"/posts/{post_id}/comments/generate-random"
        )
        return GenerationResult.from_dict(response)

    async def generate_reply(self, post_id: int, comment_id: int) -> GenerationResult:
        response = await self._client._request(
            "POST", f"/posts/{post_id}/comments/{comment_id}/reply/generate"
        )
        return GenerationResult.from_dict(response)

    async def generate_random_reply(self, post_id: int, comment_id: int) -> GenerationResult:
        response = await self._client._request(
            "POST", f"/posts/{post_id}/comments/{comment_id}/reply/generate-random"
        )
        return GenerationResult.from_dict(response)

    def generate_stream(
        self,
        post_id: int,
        on_delta: Optional[DeltaHandler] = None,
        on_completed: Optional[CompletedHandler] = None,
        on_failed: Optional[FailedHandler] = None,
    ) -> AsyncStreamSession:
        return self._client.stream(
            f"/posts/{post_id}/comments/generate/stream",
            kind="comment",
            on_delta=on_delta,
            on_completed=on_completed,
            on_failed=on_failed,
        )

    def generate_reply_stream(
        self,
        post_id: int,
        comment_id: int,
        on_delta: Optional[DeltaHandler] = None,
        on_completed: Optional[CompletedHandler] = None,
        on_failed: Optional[FailedHandler] = None,
    ) -> AsyncStreamSession:
        return self._client.stream(
            f"/posts/{post_id}/comments/{comment_id}/reply/generate/stream",
            kind="reply",
            on_delta=on_delta,
            on_completed=on_completed,
            on_failed=on_failed,
        )
