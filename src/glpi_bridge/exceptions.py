"""Error taxonomy shared by the remote and local sides of the bridge."""

from typing import Any, Dict, Optional


class GlpiError(Exception):
    """Base class for failures talking to the remote GLPI instance."""
    pass


class AuthenticationError(GlpiError):
    """Raised when the session token exchange fails."""
    pass


class TransportError(GlpiError):
    """Raised when the remote system cannot be reached or the call times out."""
    pass


class RemoteError(GlpiError):
    """Raised when the remote system answers with a non-2xx status."""
    
    def __init__(self, status_code: int, body: Any = None, message: Optional[str] = None):
        super().__init__(message or f"Remote request failed with status {status_code}")
        self.status_code = status_code
        self.body = body
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to a payload a caller can diagnose from."""
        return {"status": self.status_code, "body": self.body}


class ValidationError(ValueError):
    """Raised when caller-supplied input is malformed."""
    pass


class AccessDeniedError(Exception):
    """Raised when a user may not see the requested remote entity."""
    pass


class NotFoundError(LookupError):
    """Raised when a local lookup by id or key finds nothing."""
    pass


class SyncEngineError(Exception):
    """Raised when the remote user list cannot be reconciled."""
    pass
