# civic_dispatch/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"

    # Neighborhood resolution
    dispatch_radius_km: float = 100.0  # Targets farther than this from the reporter are not contacted
    targets_path: str | None = None  # JSON file overriding the bundled municipal corporation table

    # Dispatch rounds
    issuing_system: str = "MC"  # Prefix of synthesized reference ids: MC-<TARGET>-<token>
    # "simulated" - latency + random failures, no network (default)
    # "http"      - POST the submission document to dispatch_http_url
    # "email"     - send the composed message through an SMTP relay
    dispatch_transport: Literal["simulated", "http", "email"] = "simulated"

    # Simulated transport
    simulated_latency_seconds: float = 2.0
    simulated_success_rate: float = 0.9

    # HTTP transport
    dispatch_http_url: str | None = None  # e.g. https://intake.example.org/targets/{target_id}/issues
    dispatch_http_token: str | None = None  # Sent as Bearer token when set
    dispatch_http_timeout_seconds: float = 30.0

    # Email transport
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_sender: str | None = None  # From address; falls back to smtp_user

    # Submission ledger
    ledger_path: str | None = None  # JSON file for durable records; in-memory when unset

    # HTTP surface
    allowed_origins: list[str] = ["*"]
    enable_request_logging: bool = True
    enable_metrics: bool = True

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def is_staging(self) -> bool:
        return self.app_env == "staging"

    @property
    def smtp_enabled(self) -> bool:
        """Check if the SMTP relay is configured"""
        return bool(self.smtp_host and (self.smtp_sender or self.smtp_user))

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        missing = []
        required_fields: list[tuple[str, object]] = []

        # Transport-specific requirements
        if self.dispatch_transport == "http":
            required_fields.append(("dispatch_http_url", self.dispatch_http_url))
        elif self.dispatch_transport == "email":
            required_fields.extend([
                ("smtp_host", self.smtp_host),
                ("smtp_sender or smtp_user", self.smtp_sender or self.smtp_user),
            ])

        # Rounds must survive a restart in production
        required_fields.append(("ledger_path", self.ledger_path))

        for field_name, value in required_fields:
            if not value:
                missing.append(field_name)

        return missing


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    if s.dispatch_radius_km <= 0:
        warnings.append(
            f"dispatch_radius_km={s.dispatch_radius_km}: only co-located targets will ever be contacted."
        )

    if s.dispatch_transport == "simulated":
        if s.is_production:
            warnings.append("prod: dispatch_transport=simulated (nothing is actually delivered).")
        if not 0.0 <= s.simulated_success_rate <= 1.0:
            warnings.append(
                f"simulated_success_rate={s.simulated_success_rate} is outside [0, 1]."
            )
    elif s.dispatch_transport == "http":
        if not s.dispatch_http_url:
            warnings.append("dispatch_transport=http but dispatch_http_url is missing.")
        elif not s.dispatch_http_url.startswith("https://"):
            warnings.append("dispatch_http_url is not https (issue reports travel unencrypted).")
    elif s.dispatch_transport == "email":
        if not s.smtp_enabled:
            warnings.append("dispatch_transport=email but smtp_host/smtp_sender are missing.")

    if not s.ledger_path:
        warnings.append("ledger_path is not set (submission records are lost on restart).")

    if s.is_production and s.allowed_origins == ["*"]:
        warnings.append("prod: allowed_origins=['*'] (CORS is wide open).")

    return warnings


def validate_or_warn(s: "Settings") -> None:
    """
    In prod: enforce required settings (hard fail).
    In non-prod: warn only.
    """
    missing = s.validate_required_for_production()

    if missing:
        raise RuntimeError(f"Missing required settings for production: {', '.join(missing)}")

    from civic_dispatch.infra.logging_config import get_logger

    logger = get_logger(__name__)
    for msg in warn_on_risky_config(s):
        logger.warning(f"[config] {msg}")


settings = Settings()
