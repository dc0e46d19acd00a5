"""Base API client interface and common functionality."""

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

from ..exceptions import GlpiError, AuthenticationError, TransportError, RemoteError
from ..utils.logging import get_logger


QueryParams = Union[Mapping[str, Any], Sequence[Tuple[str, Any]]]


class BaseAPIClient(ABC):
    """Abstract base class for REST API clients."""
    
    def __init__(self, base_url: str, **kwargs):
        """Initialize the API client.
        
        Args:
            base_url: Root URL of the remote API
            **kwargs: Additional configuration parameters
        """
        self.base_url = base_url.rstrip('/')
        self.logger = get_logger(self.__class__.__name__)
    
    @abstractmethod
    async def request(
        self,
        method: str,
        path: str,
        headers: Optional[Mapping[str, str]] = None,
        query: Optional[QueryParams] = None,
        body: Any = None
    ) -> Any:
        """Issue one HTTP call and return the decoded body.
        
        Raises:
            RemoteError: On a non-2xx response
            TransportError: On connection failure or timeout
        """
        pass
    
    async def get(self, path: str, query: Optional[QueryParams] = None, **kwargs) -> Any:
        return await self.request("GET", path, query=query, **kwargs)
    
    async def post(self, path: str, body: Any = None, **kwargs) -> Any:
        return await self.request("POST", path, body=body, **kwargs)
    
    async def put(self, path: str, body: Any = None, **kwargs) -> Any:
        return await self.request("PUT", path, body=body, **kwargs)
    
    async def delete(self, path: str, query: Optional[QueryParams] = None, **kwargs) -> Any:
        return await self.request("DELETE", path, query=query, **kwargs)
    
    async def health_check(self) -> bool:
        """Check if the API service is accessible.
        
        Returns:
            True if service is healthy, False otherwise
        """
        try:
            await self.get("getMyProfiles")
            self.logger.info("API health check passed", client=self.__class__.__name__)
            return True
        except GlpiError as e:
            self.logger.error(
                "API health check failed",
                client=self.__class__.__name__,
                error=str(e)
            )
            return False
