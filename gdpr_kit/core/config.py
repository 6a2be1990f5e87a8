from dataclasses import dataclass, field
from pathlib import Path
import os


DEFAULT_SECRET_KEY = "change-me-for-production"
PACKAGE_DIR = Path(__file__).resolve().parents[1]


def _env_list(name: str, default: str = "") -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    app_name: str = "GDPR Compliance Kit"
    api_version: str = "v1"
    api_url: str = os.getenv("GDPR_KIT_API_URL", "http://127.0.0.1:8000")
    log_level: str = os.getenv("GDPR_KIT_LOG_LEVEL", "INFO")
    secret_key: str = os.getenv("GDPR_KIT_SECRET_KEY", DEFAULT_SECRET_KEY)
    algorithm: str = "HS256"
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "120"))
    encryption_keys: tuple[str, ...] = _env_list("GDPR_KIT_ENCRYPTION_KEYS")
    pseudonym_salt: str = os.getenv("GDPR_KIT_PSEUDONYM_SALT", "gdpr-kit-salt")

    data_dir: Path = Path(os.getenv("GDPR_KIT_DATA_DIR", str(PACKAGE_DIR.parent / "data")))
    processing_register_path: Path = PACKAGE_DIR / "data" / "processing_activities.json"
    template_dir: Path = PACKAGE_DIR / "templates"

    controller_name: str = os.getenv("GDPR_KIT_CONTROLLER_NAME", "Example Web Shop Ltd.")
    controller_address: str = os.getenv("GDPR_KIT_CONTROLLER_ADDRESS", "1 Example Street, 10115 Berlin, Germany")
    contact_email: str = os.getenv("GDPR_KIT_CONTACT_EMAIL", "privacy@example.com")
    dpo_email: str = os.getenv("GDPR_KIT_DPO_EMAIL", "dpo@example.com")
    policy_version: str = os.getenv("GDPR_KIT_POLICY_VERSION", "2024-01")
    privacy_policy_url: str = "/privacy/policy.md"

    consent_max_age_days: int = int(os.getenv("GDPR_KIT_CONSENT_MAX_AGE_DAYS", "365"))
    request_response_days: int = int(os.getenv("GDPR_KIT_REQUEST_RESPONSE_DAYS", "30"))
    request_extension_days: int = int(os.getenv("GDPR_KIT_REQUEST_EXTENSION_DAYS", "60"))

    audit_retention_days: int = int(os.getenv("GDPR_KIT_AUDIT_RETENTION_DAYS", "365"))
    consent_history_retention_days: int = int(os.getenv("GDPR_KIT_CONSENT_HISTORY_RETENTION_DAYS", "1095"))
    closed_request_retention_days: int = int(os.getenv("GDPR_KIT_CLOSED_REQUEST_RETENTION_DAYS", "730"))
    inactive_account_days: int = int(os.getenv("GDPR_KIT_INACTIVE_ACCOUNT_DAYS", "1095"))

    smtp_host: str = os.getenv("GDPR_KIT_SMTP_HOST", "")
    smtp_port: int = int(os.getenv("GDPR_KIT_SMTP_PORT", "587"))
    smtp_user: str = os.getenv("GDPR_KIT_SMTP_USER", "")
    smtp_password: str = os.getenv("GDPR_KIT_SMTP_PASSWORD", "")
    smtp_use_tls: bool = os.getenv("GDPR_KIT_SMTP_TLS", "true").lower() == "true"
    mail_from: str = os.getenv("GDPR_KIT_MAIL_FROM", "no-reply@example.com")

    personal_data_paths: tuple[str, ...] = field(
        default_factory=lambda: _env_list(
            "GDPR_KIT_PERSONAL_DATA_PATHS",
            "/auth/me,/auth/users,/account,/consent,/data-requests,/governance,/audit",
        )
    )

    @property
    def audit_log_path(self) -> Path:
        return self.data_dir / "audit_events.jsonl"

    @property
    def log_path(self) -> Path:
        return self.data_dir / "app.log"


settings = Settings()
settings.data_dir.mkdir(parents=True, exist_ok=True)
