from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    app_name: str = "Secura Portal"
    app_version: str = "2026-10.v1"
    database_url: str = "sqlite:///./secura.db"
    app_public_url: str = "http://localhost:5173"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Staff JWT ----
    jwt_secret: str = "dev-change-me"
    jwt_algorithm: str = "HS256"
    jwt_exp_minutes: int = 60 * 12

    # ---- Client sessions / OTP ----
    client_session_days: int = 30
    client_session_header: str = "X-Client-Session"
    otp_length: int = 6
    otp_ttl_minutes: int = 10
    otp_rate_limit_seconds: int = 60

    # ---- Uploads / storage ----
    max_upload_bytes: int = 10 * 1024 * 1024  # 10 MB
    storage_root: str = "./storage"
    bucket_property_documents: str = "property-documents"
    bucket_client_documents: str = "client-documents"
    bucket_submission_updates: str = "submission-updates"
    signed_url_ttl_seconds: int = 300

    # ---- SMS (Twilio) ----
    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    twilio_from_number: str | None = None
    twilio_base_url: str = "https://api.twilio.com/2010-04-01"

    # ---- Mail (Resend) ----
    resend_api_key: str | None = None
    resend_base_url: str = "https://api.resend.com"
    mail_from: str = "Secura <noreply@secura.me>"

    # ---- Service-to-service ----
    internal_api_key: str = "dev-internal-key"

    # ---- Celery ----
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/1"
    reconcile_interval_seconds: int = 60 * 60

    def model_post_init(self, __context) -> None:
        env = (self.app_env or "local").strip().lower()
        is_prod = env in ("prod", "production")

        if is_prod:
            if self.jwt_secret == "dev-change-me":
                raise ValueError("SECURITY: jwt_secret must be set in prod")
            if self.internal_api_key == "dev-internal-key":
                raise ValueError("SECURITY: internal_api_key must be set in prod")

            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")


settings = Settings()
