"""GLPI REST API client implementation."""

import asyncio
import json
from typing import Any, Dict, List, Mapping, Optional

import aiohttp
from yarl import URL

from .base import BaseAPIClient, QueryParams, RemoteError, TransportError
from .criteria import encode_query, format_range, search_path, validate_item_type
from ..auth.session_handler import GlpiSessionProvider, get_session_provider
from ..config.settings import get_settings


class GlpiClient(BaseAPIClient):
    """Thin asynchronous boundary over the GLPI REST API.

    One call maps to one HTTP request: no retries, no pagination loops.
    """

    def __init__(
        self,
        base_url: str,
        session_provider: GlpiSessionProvider,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        session: Optional[aiohttp.ClientSession] = None,
        **kwargs
    ):
        """Initialize GLPI client.

        Args:
            base_url: GLPI ``apirest.php`` root URL
            session_provider: Supplies the authenticated header set
            timeout: Per-call timeout in seconds
            verify_ssl: Whether to verify TLS certificates
            session: Optional shared aiohttp session
            **kwargs: Additional configuration parameters
        """
        super().__init__(base_url, **kwargs)

        self.session_provider = session_provider
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.verify_ssl = verify_ssl
        self.session = session
        self._owns_session = session is None

        self.logger.info("GLPI client initialized", base_url=self.base_url, timeout=timeout)

    @classmethod
    def from_settings(cls, session_provider: Optional[GlpiSessionProvider] = None) -> "GlpiClient":
        """Create a client from application settings."""
        glpi = get_settings().glpi
        return cls(
            base_url=glpi.url,
            session_provider=session_provider or get_session_provider(),
            timeout=glpi.request_timeout,
            verify_ssl=glpi.verify_ssl
        )

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self):
        if self.session and self._owns_session and not self.session.closed:
            await self.session.close()
        self.session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            connector = aiohttp.TCPConnector(ssl=self.verify_ssl)
            self.session = aiohttp.ClientSession(connector=connector)
            self._owns_session = True
        return self.session

    def build_url(self, path: str, query: Optional[QueryParams] = None) -> str:
        """Join the base URL, a relative path and an encoded query string."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        if query:
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}{encode_query(query)}"
        return url

    @staticmethod
    def _decode(raw: bytes, charset: Optional[str] = None) -> Any:
        # Undecodable bytes become U+FFFD; the status code is never lost
        try:
            text = raw.decode(charset or "utf-8", errors="replace")
        except LookupError:
            text = raw.decode("utf-8", errors="replace")
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            return text

    async def request(
        self,
        method: str,
        path: str,
        headers: Optional[Mapping[str, str]] = None,
        query: Optional[QueryParams] = None,
        body: Any = None
    ) -> Any:
        """Issue one authenticated call and return the decoded body.

        Raises:
            AuthenticationError: If no session token can be obtained
            RemoteError: On a non-2xx response
            TransportError: On connection failure or timeout
        """
        request_headers = await self.session_provider.headers()
        if headers:
            request_headers.update(headers)

        url = self.build_url(path, query)

        self.logger.debug("GLPI request", method=method, path=path)

        try:
            async with self._get_session().request(
                method,
                URL(url, encoded=True),
                headers=request_headers,
                json=body,
                timeout=self.timeout
            ) as response:
                payload = self._decode(await response.read(), response.charset)

                if response.status == 401:
                    self.session_provider.invalidate()

                if not 200 <= response.status < 300:
                    self.logger.warning(
                        "GLPI request failed",
                        method=method,
                        path=path,
                        status=response.status
                    )
                    raise RemoteError(response.status, payload)

                return payload

        except aiohttp.ClientError as e:
            self.logger.error("GLPI transport error", method=method, path=path, error=str(e))
            raise TransportError(f"Network error calling {method} {path}: {e}") from e
        except asyncio.TimeoutError as e:
            self.logger.error("GLPI request timed out", method=method, path=path)
            raise TransportError(f"Timed out calling {method} {path}") from e

    # Item-type-per-path convenience methods

    async def list_items(
        self,
        item_type: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        **params
    ) -> Any:
        """List items of one type; the window is applied only when ``limit`` is given."""
        query: Dict[str, Any] = dict(params)
        if limit is not None:
            query["range"] = format_range(limit, offset or 0)
        return await self.get(validate_item_type(item_type), query=query or None)

    async def get_item(self, item_type: str, item_id: int, **params) -> Any:
        return await self.get(f"{validate_item_type(item_type)}/{int(item_id)}", query=params or None)

    async def get_sub_items(self, item_type: str, item_id: int, related_type: str, **params) -> Any:
        path = f"{validate_item_type(item_type)}/{int(item_id)}/{validate_item_type(related_type)}"
        return await self.get(path, query=params or None)

    async def create_item(self, item_type: str, data: Dict[str, Any]) -> Any:
        return await self.post(validate_item_type(item_type), body={"input": data})

    async def update_item(self, item_type: str, item_id: int, data: Dict[str, Any]) -> Any:
        return await self.put(f"{validate_item_type(item_type)}/{int(item_id)}", body={"input": data})

    async def delete_item(self, item_type: str, item_id: int, force_purge: bool = False) -> Any:
        query = {"force_purge": "true"} if force_purge else None
        return await self.delete(f"{validate_item_type(item_type)}/{int(item_id)}", query=query)

    async def search(self, item_type: str, *args, **kwargs) -> Any:
        """Run a criteria search; arguments are those of ``build_search_params``."""
        return await self.get(search_path(item_type, *args, **kwargs))

    async def list_search_options(self, item_type: str) -> Any:
        return await self.get(f"listSearchOptions/{validate_item_type(item_type)}")

    async def list_users(self, limit: Optional[int] = None, offset: Optional[int] = None) -> List[Dict[str, Any]]:
        """List users; with no ``limit`` GLPI applies its default ``0-49`` range."""
        return await self.list_items("User", limit=limit, offset=offset)
