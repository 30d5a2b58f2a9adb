"""Application configuration via environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration for the PHP API Stack health service."""

    # Application
    app_name: str = "PHP API Stack"
    app_env: str = Field(default="production", pattern=r"^(development|staging|production|testing)$")
    demo_mode: bool = False
    stack_version: str = "1.2.1"
    stack_image: str = "kariricode/php-api-stack"
    log_level: str = "INFO"
    log_format: str = "json"

    # API
    allowed_origins: str = "*"

    # Redis
    redis_host: str = "127.0.0.1"
    redis_port: int = Field(default=6379, ge=1, le=65535)
    redis_password: str = ""

    # PHP runtime probe
    php_binary: str = "php"
    php_status_url: str = ""
    probe_timeout: float = Field(default=5.0, gt=0)

    # Application layout
    document_root: str = "/var/www/html/public"
    open_basedir: str = ""
    app_directories: str = "/var/www/html,/var/www/html/public,/tmp"

    @property
    def allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    @property
    def app_directories_list(self) -> list[str]:
        return [d.strip() for d in self.app_directories.split(",") if d.strip()]

    @property
    def show_demo(self) -> bool:
        """The landing page stays hidden in production unless demo mode is on."""
        return self.app_env != "production" or self.demo_mode

    model_config = {"env_file": ".env", "extra": "ignore"}


def get_settings() -> Settings:
    """Return settings loaded from the environment."""
    return Settings()
