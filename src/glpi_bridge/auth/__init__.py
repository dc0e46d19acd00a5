"""Authentication module for the GLPI bridge."""

from .session_handler import GlpiSessionProvider, get_session_provider, close_session_provider

__all__ = ["GlpiSessionProvider", "get_session_provider", "close_session_provider"]
