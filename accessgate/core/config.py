"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

_TRUTHY = {"1", "true", "yes", "on"}

_DEV_ACCESS_SECRET = "dev-access-secret-change-me"
_DEV_REFRESH_SECRET = "dev-refresh-secret-change-me"
_DEV_VERIFICATION_SECRET = "dev-verification-secret-change-me"


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in _TRUTHY


@dataclass(frozen=True)
class AuthConfig:
    """Token signing and session cookie configuration."""

    issuer: str
    access_secret: str
    refresh_secret: str
    verification_secret: str
    access_token_ttl_seconds: int = 3600
    refresh_token_ttl_seconds: int = 7 * 24 * 60 * 60
    verification_token_ttl_seconds: int = 15 * 60
    refresh_cookie_name: str = "refresh_token"
    refresh_cookie_path: str = "/api/auth"
    cookie_secure: bool = True
    revoke_on_refresh_reuse: bool = True


@dataclass(frozen=True)
class StorageConfig:
    """SQLite runtime state location."""

    sqlite_path: str


@dataclass(frozen=True)
class DeliveryConfig:
    """Delivery queue and worker pool configuration."""

    concurrency: int = 5
    max_attempts: int = 3
    backoff_base_seconds: float = 5.0
    lease_seconds: float = 60.0
    poll_interval_seconds: float = 0.5
    job_timeout_seconds: float = 30.0
    completed_retention_seconds: float = 60 * 60
    shutdown_grace_seconds: float = 10.0
    embedded_workers: bool = True


@dataclass(frozen=True)
class MailConfig:
    """Outgoing mail configuration."""

    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    use_ssl: bool
    mail_from: str
    frontend_url: str


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str


@dataclass(frozen=True)
class SecurityConfig:
    """API perimeter security settings."""

    cors_allowed_origins: list[str]
    request_max_bytes: int


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    environment: str
    auth: AuthConfig
    storage: StorageConfig
    delivery: DeliveryConfig
    mail: MailConfig
    logging: LoggingConfig
    security: SecurityConfig

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @staticmethod
    def from_env() -> "AppConfig":
        """Build app config from process environment."""
        environment = os.getenv("APP_ENV", "development").strip().lower() or "development"
        is_production = environment == "production"

        access_secret = os.getenv("JWT_ACCESS_SECRET", "").strip()
        refresh_secret = os.getenv("JWT_REFRESH_SECRET", "").strip()
        verification_secret = os.getenv("JWT_VERIFICATION_SECRET", "").strip()
        if is_production:
            secrets = [access_secret, refresh_secret, verification_secret]
            if not all(secrets):
                raise ValueError(
                    "JWT_ACCESS_SECRET, JWT_REFRESH_SECRET and "
                    "JWT_VERIFICATION_SECRET are required in production"
                )
            if len(set(secrets)) != len(secrets):
                raise ValueError("JWT secrets must be distinct per token class")
        smtp_host = os.getenv("SMTP_HOST", "").strip()
        if is_production and not smtp_host:
            raise ValueError("SMTP_HOST is required in production")
        access_secret = access_secret or _DEV_ACCESS_SECRET
        refresh_secret = refresh_secret or _DEV_REFRESH_SECRET
        verification_secret = verification_secret or _DEV_VERIFICATION_SECRET

        issuer = os.getenv("AUTH_ISSUER", "accessgate").strip() or "accessgate"
        access_ttl = int(os.getenv("AUTH_ACCESS_TOKEN_TTL_SECONDS", "3600"))
        refresh_ttl = int(os.getenv("AUTH_REFRESH_TOKEN_TTL_SECONDS", "604800"))
        verification_ttl = int(os.getenv("AUTH_VERIFICATION_TOKEN_TTL_SECONDS", "900"))
        cookie_name = (
            os.getenv("AUTH_REFRESH_COOKIE_NAME", "refresh_token").strip()
            or "refresh_token"
        )

        sqlite_path = (
            os.getenv("STATE_SQLITE_PATH", "runtime/accessgate.db").strip()
            or "runtime/accessgate.db"
        )

        log_level = os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"
        cors_allowed_origins = [
            origin.strip()
            for origin in os.getenv(
                "CORS_ALLOWED_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if origin.strip()
        ]
        request_max_bytes = int(os.getenv("REQUEST_MAX_BYTES", str(10 * 1024)))

        return AppConfig(
            environment=environment,
            auth=AuthConfig(
                issuer=issuer,
                access_secret=access_secret,
                refresh_secret=refresh_secret,
                verification_secret=verification_secret,
                access_token_ttl_seconds=access_ttl,
                refresh_token_ttl_seconds=refresh_ttl,
                verification_token_ttl_seconds=verification_ttl,
                refresh_cookie_name=cookie_name,
                cookie_secure=_env_flag("AUTH_COOKIE_SECURE", "1"),
                revoke_on_refresh_reuse=_env_flag("AUTH_REVOKE_ON_REFRESH_REUSE", "1"),
            ),
            storage=StorageConfig(sqlite_path=sqlite_path),
            delivery=DeliveryConfig(
                concurrency=max(1, int(os.getenv("DELIVERY_CONCURRENCY", "5"))),
                max_attempts=max(1, int(os.getenv("DELIVERY_MAX_ATTEMPTS", "3"))),
                backoff_base_seconds=float(
                    os.getenv("DELIVERY_BACKOFF_BASE_SECONDS", "5")
                ),
                lease_seconds=float(os.getenv("DELIVERY_LEASE_SECONDS", "60")),
                poll_interval_seconds=float(
                    os.getenv("DELIVERY_POLL_INTERVAL_SECONDS", "0.5")
                ),
                job_timeout_seconds=float(
                    os.getenv("DELIVERY_JOB_TIMEOUT_SECONDS", "30")
                ),
                completed_retention_seconds=float(
                    os.getenv("DELIVERY_COMPLETED_RETENTION_SECONDS", "3600")
                ),
                shutdown_grace_seconds=float(
                    os.getenv("DELIVERY_SHUTDOWN_GRACE_SECONDS", "10")
                ),
                embedded_workers=_env_flag("DELIVERY_EMBEDDED_WORKERS", "1"),
            ),
            mail=MailConfig(
                smtp_host=smtp_host,
                smtp_port=int(os.getenv("SMTP_PORT", "465")),
                smtp_user=os.getenv("SMTP_USER", "").strip(),
                smtp_password=os.getenv("SMTP_PASS", ""),
                use_ssl=_env_flag("SMTP_USE_SSL", "1"),
                mail_from=(
                    os.getenv("MAIL_FROM", "").strip()
                    or "No Reply <noreply@example.com>"
                ),
                frontend_url=(
                    os.getenv("FRONTEND_URL", "").strip().rstrip("/")
                    or "http://localhost:3000"
                ),
            ),
            logging=LoggingConfig(level=log_level),
            security=SecurityConfig(
                cors_allowed_origins=cors_allowed_origins,
                request_max_bytes=request_max_bytes,
            ),
        )
