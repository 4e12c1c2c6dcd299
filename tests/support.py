from __future__ import annotations

from pathlib import Path

from accessgate.core.config import (
    AppConfig,
    AuthConfig,
    DeliveryConfig,
    LoggingConfig,
    MailConfig,
    SecurityConfig,
    StorageConfig,
)

STRONG_PASSWORD = "Str0ng!Pass"


class RecordingMailer:
    """In-memory mailer that keeps every message it is asked to send."""

    def __init__(self) -> None:
        self.sent: list[dict[str, str]] = []

    def send(self, to: str, subject: str, html: str) -> str:
        message_id = f"<message-{len(self.sent) + 1}@test.local>"
        self.sent.append(
            {"to": to, "subject": subject, "html": html, "message_id": message_id}
        )
        return message_id


class FakeClock:
    """Manually advanced clock for ledgers, codec and queue."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def build_auth_config(**overrides) -> AuthConfig:
    values = {
        "issuer": "accessgate-test",
        "access_secret": "access-secret",
        "refresh_secret": "refresh-secret",
        "verification_secret": "verification-secret",
    }
    values.update(overrides)
    return AuthConfig(**values)


def build_app_config(sqlite_path: Path, **delivery_overrides) -> AppConfig:
    delivery = {"embedded_workers": False, "poll_interval_seconds": 0.01}
    delivery.update(delivery_overrides)
    return AppConfig(
        environment="test",
        auth=build_auth_config(),
        storage=StorageConfig(sqlite_path=str(sqlite_path)),
        delivery=DeliveryConfig(**delivery),
        mail=MailConfig(
            smtp_host="",
            smtp_port=465,
            smtp_user="",
            smtp_password="",
            use_ssl=True,
            mail_from="No Reply <noreply@test.local>",
            frontend_url="http://frontend.test",
        ),
        logging=LoggingConfig(level="INFO"),
        security=SecurityConfig(
            cors_allowed_origins=["http://frontend.test"],
            request_max_bytes=10 * 1024,
        ),
    )
