"""Application configuration settings."""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings


class GlpiSettings(BaseSettings):
    """GLPI REST API configuration."""
    
    url: str = Field(default="http://localhost/glpi/apirest.php")
    login: str = Field(default="")
    password: str = Field(default="")
    app_token: str = Field(default="")
    request_timeout: float = Field(default=30.0)
    verify_ssl: bool = Field(default=True)
    
    class Config:
        env_prefix = "GLPI_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


class SyncSettings(BaseSettings):
    """User synchronization configuration."""
    
    fallback_email_domain: str = Field(default="local.sync")
    provenance_tag: str = Field(default="glpi-sync")
    
    class Config:
        env_prefix = ""
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


class DatabaseSettings(BaseSettings):
    """Database configuration."""
    
    url: str = Field(default="sqlite:///./data/glpi_bridge.db")
    
    class Config:
        env_prefix = "DB_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


class LoggingSettings(BaseSettings):
    """Logging configuration."""
    
    level: str = Field(default="INFO")
    format: str = Field(default="json")
    file_path: Optional[str] = Field(default="./logs/glpi_bridge.log")
    
    class Config:
        env_prefix = "LOG_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


class ServerSettings(BaseSettings):
    """HTTP server configuration."""
    
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)
    
    class Config:
        env_prefix = "SERVER_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


class AppSettings(BaseSettings):
    """Main application settings."""
    
    name: str = Field(default="GLPI Bridge")
    version: str = Field(default="1.0.0")
    environment: str = Field(default="development")
    
    # Sub-settings
    glpi: GlpiSettings = GlpiSettings()
    sync: SyncSettings = SyncSettings()
    database: DatabaseSettings = DatabaseSettings()
    logging: LoggingSettings = LoggingSettings()
    server: ServerSettings = ServerSettings()
    
    class Config:
        env_prefix = "APP_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


# Global settings instance
settings = AppSettings()


def get_settings() -> AppSettings:
    """Get application settings."""
    return settings


def reload_settings() -> AppSettings:
    """Re-read settings from the environment."""
    global settings
    settings = AppSettings(
        glpi=GlpiSettings(),
        sync=SyncSettings(),
        database=DatabaseSettings(),
        logging=LoggingSettings(),
        server=ServerSettings(),
    )
    return settings
