"""API clients package for the GLPI REST API."""

from .base import (
    BaseAPIClient,
    GlpiError,
    AuthenticationError,
    TransportError,
    RemoteError
)

from .criteria import (
    SearchType,
    SearchCriterion,
    CriterionLink,
    build_search_params,
    encode_search_query,
    search_path
)

from .glpi import GlpiClient

__all__ = [
    # Base classes and exceptions
    "BaseAPIClient",
    "GlpiError",
    "AuthenticationError",
    "TransportError",
    "RemoteError",
    
    # Search criteria
    "SearchType",
    "SearchCriterion",
    "CriterionLink",
    "build_search_params",
    "encode_search_query",
    "search_path",
    
    # Client implementations
    "GlpiClient"
]
