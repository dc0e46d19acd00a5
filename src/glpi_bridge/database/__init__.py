"""Database package for the GLPI bridge."""

from .database import (
    DatabaseManager,
    get_db_manager,
    init_database,
    close_database
)

from .models import (
    Base,
    UserModel,
    UserResponse,
    UserSearch
)

from .operations import (
    UserRepository,
    get_user_repository
)

from .service import (
    DatabaseService
)

__all__ = [
    # Database management
    "DatabaseManager",
    "get_db_manager",
    "init_database",
    "close_database",
    
    # Models
    "Base",
    "UserModel",
    "UserResponse",
    "UserSearch",
    
    # Repositories
    "UserRepository",
    "get_user_repository",
    
    # Service
    "DatabaseService"
]
