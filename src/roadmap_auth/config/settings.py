"""Configuration Settings for the Roadmap Auth Service

Manages environment variables and application configuration.
"""

import re
from functools import lru_cache
from pydantic_settings import BaseSettings
from typing import Optional

DEFAULT_JWT_SECRET = "roadmap-secret-change-in-production"

_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$", re.IGNORECASE)
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration_seconds(value: str) -> int:
    """Parse a duration like "24h", "30m", "90s", "7d" or "3600" into seconds

    Raises:
        ValueError: If the value is not a recognised duration
    """
    match = _DURATION_PATTERN.match(str(value))
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return int(amount) * _DURATION_UNITS[unit.lower()]


def parse_csv(value: Optional[str]) -> list[str]:
    """Split a comma separated setting, dropping blank entries"""
    if not value:
        return []
    return [part.strip() for part in str(value).split(",") if part.strip()]


class Settings(BaseSettings):
    """Application settings"""

    # Service info
    service_name: str = "roadmap-auth"
    service_version: str = "1.0.0"
    environment: str = "development"

    # Server configuration
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # Entra ID (OIDC) configuration
    entra_tenant_id: Optional[str] = None
    entra_client_id: Optional[str] = None
    entra_client_secret: Optional[str] = None
    entra_redirect_uri: Optional[str] = None
    entra_allow_all: bool = False
    entra_admin_upns: str = ""
    entra_scopes: str = "openid profile email User.Read"
    entra_prompt: Optional[str] = "select_account"
    entra_authority_host: str = "https://login.microsoftonline.com"
    graph_base_url: str = "https://graph.microsoft.com/v1.0"
    upstream_timeout_seconds: float = 10.0

    # Redirect URI / delivery
    callback_path: str = "/api/auth/entra/callback"
    base_path_dev: str = ""
    base_path_prod: str = ""
    default_return_url: str = "/admin"
    login_page_path: str = "/admin/login"

    # Flow cookies
    flow_cookie_prefix: str = "entra_"
    flow_cookie_max_age_seconds: int = 600  # 10 minutes

    # Session token configuration
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    jwt_expires_in: str = "24h"
    session_cookie_name: str = "roadmap_admin_token"

    # Superadmin determination
    superadmin_instance_slugs: str = ""
    superadmin_cache_ttl_seconds: int = 120  # 2 minutes
    superadmin_cache_backend: str = "memory"  # memory or redis

    # Redis configuration (superadmin_cache_backend=redis only)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None

    @property
    def redis_url(self) -> str:
        """Construct Redis URL from components"""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # Tenant records and directory access
    instances_file: Optional[str] = None
    sharepoint_access_token: Optional[str] = None

    # CORS configuration
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    # Logging
    log_level: str = "INFO"

    @property
    def entra_sso_enabled(self) -> bool:
        """SSO is enabled only when tenant, client id and client secret are all set"""
        return bool(self.entra_tenant_id and self.entra_client_id and self.entra_client_secret)

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.environment.strip().lower() in ("development", "dev", "local", "test")

    @property
    def jwt_ttl_seconds(self) -> int:
        return parse_duration_seconds(self.jwt_expires_in)

    @property
    def scope_list(self) -> list[str]:
        return self.entra_scopes.split()

    @property
    def allowlist_configured(self) -> bool:
        return bool(self.entra_admin_upns.strip()) or self.entra_allow_all

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance

    Returns:
        Settings instance
    """
    return Settings()
