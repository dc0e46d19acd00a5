"""
Session token handling for the GLPI REST API.

GLPI hands out a session token from ``/initSession`` in exchange for HTTP
Basic credentials plus the application token. The token is cached for the
lifetime of the process and attached to every subsequent call.
"""

import asyncio
import base64
from typing import Dict, Optional

import aiohttp
import structlog

from ..exceptions import AuthenticationError
from ..config.settings import get_settings

logger = structlog.get_logger(__name__)


class GlpiSessionProvider:
    """Obtains, caches and invalidates the GLPI session token."""

    def __init__(
        self,
        base_url: str,
        login: str,
        password: str,
        app_token: str,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.login = login
        self.password = password
        self.app_token = app_token
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.verify_ssl = verify_ssl

        self._session = session
        self._owns_session = session is None
        self._token: Optional[str] = None
        # Single-flight guard for the check-then-set on _token
        self._lock = asyncio.Lock()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    @property
    def has_token(self) -> bool:
        return self._token is not None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(ssl=self.verify_ssl)
            self._session = aiohttp.ClientSession(connector=connector)
            self._owns_session = True
        return self._session

    def _basic_auth_header(self) -> str:
        credentials = f"{self.login}:{self.password}"
        return "Basic " + base64.b64encode(credentials.encode()).decode()

    async def ensure_token(self) -> str:
        """Return the cached session token, authenticating on first use.

        Concurrent callers share one exchange. A failed exchange caches
        nothing, so the next call tries again.

        Raises:
            AuthenticationError: If the exchange fails for any reason
        """
        if self._token:
            return self._token

        async with self._lock:
            if self._token:
                return self._token
            self._token = await self._init_session()
            return self._token

    async def _init_session(self) -> str:
        url = f"{self.base_url}/initSession"
        headers = {
            "App-Token": self.app_token,
            "Authorization": self._basic_auth_header(),
        }

        logger.info("Initiating GLPI session", base_url=self.base_url, login=self.login)

        try:
            async with self._get_session().get(
                url,
                params={"get_full_session": "true"},
                headers=headers,
                timeout=self.timeout
            ) as response:
                if response.status != 200:
                    response_text = await response.text()
                    logger.error(
                        "GLPI session initiation rejected",
                        status=response.status,
                        response=response_text
                    )
                    raise AuthenticationError(
                        f"Session initiation failed: {response.status} - {response_text}"
                    )

                data = await response.json(content_type=None)

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Error during GLPI session initiation", error=str(e))
            raise AuthenticationError(f"Session initiation failed: {e}") from e
        except ValueError as e:
            raise AuthenticationError(f"Session initiation returned malformed JSON: {e}") from e

        token = data.get("session_token") if isinstance(data, dict) else None
        if not token:
            raise AuthenticationError("Session initiation response carried no session_token")

        logger.info("GLPI session established")
        return token

    async def headers(self) -> Dict[str, str]:
        """Compose the standard header set for an authenticated call."""
        token = await self.ensure_token()
        return {
            "Session-Token": token,
            "App-Token": self.app_token,
            "Content-Type": "application/json",
        }

    def invalidate(self) -> None:
        """Drop the cached token so the next call re-authenticates."""
        if self._token:
            logger.info("GLPI session token invalidated")
        self._token = None

    async def kill_session(self) -> None:
        """Close the remote session, if one is open, and forget the token."""
        if not self._token:
            return

        headers = {"Session-Token": self._token, "App-Token": self.app_token}
        try:
            async with self._get_session().get(
                f"{self.base_url}/killSession",
                headers=headers,
                timeout=self.timeout
            ) as response:
                if response.status != 200:
                    logger.warning("GLPI killSession returned non-200", status=response.status)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Failed to kill GLPI session", error=str(e))
        finally:
            self.invalidate()

    async def close(self) -> None:
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


# Process-wide provider instance
_session_provider: Optional[GlpiSessionProvider] = None


def get_session_provider() -> GlpiSessionProvider:
    """Get the process-wide session provider, creating it from settings."""
    global _session_provider
    if _session_provider is None:
        glpi = get_settings().glpi
        _session_provider = GlpiSessionProvider(
            base_url=glpi.url,
            login=glpi.login,
            password=glpi.password,
            app_token=glpi.app_token,
            timeout=glpi.request_timeout,
            verify_ssl=glpi.verify_ssl
        )
    return _session_provider


async def close_session_provider() -> None:
    """Kill the remote session and release the process-wide provider."""
    global _session_provider
    if _session_provider is not None:
        await _session_provider.kill_session()
        await _session_provider.close()
        _session_provider = None
