from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    # -------------------------------------------------
    # General
    # -------------------------------------------------
    PROJECT_NAME: str = "Estate CMS Access API"
    ENV: str = "development"

    # -------------------------------------------------
    # Frontend Domains (CORS is built below)
    # -------------------------------------------------
    ADMIN_PANEL_DOMAIN: Optional[str] = Field(None, env="ADMIN_PANEL_DOMAIN")

    BACKEND_CORS_ORIGINS: List[str] = []

    # -------------------------------------------------
    # Persistence
    # -------------------------------------------------
    # "supabase" in deployments, "memory" for local runs and tests
    STORE_BACKEND: str = Field("supabase", env="STORE_BACKEND")

    SUPABASE_URL: Optional[str] = Field(None, env="SUPABASE_URL")
    SUPABASE_ANON_KEY: Optional[str] = Field(None, env="SUPABASE_ANON_KEY")
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = Field(None, env="SUPABASE_SERVICE_ROLE_KEY")

    # -------------------------------------------------
    # Sessions
    # -------------------------------------------------
    LOGIN_RECORD_INTERVAL_MINUTES: int = Field(15, env="LOGIN_RECORD_INTERVAL_MINUTES", description="Minimum gap between last_login writes for one user")

    # -------------------------------------------------
    # Permission requests
    # -------------------------------------------------
    PERMISSION_REQUEST_MESSAGE_MAX: int = Field(1000, env="PERMISSION_REQUEST_MESSAGE_MAX")
    BUSINESS_JUSTIFICATION_MAX: int = Field(2000, env="BUSINESS_JUSTIFICATION_MAX")
    REVIEW_NOTES_MAX: int = Field(1000, env="REVIEW_NOTES_MAX")
    PENDING_LIST_LIMIT: int = Field(50, env="PENDING_LIST_LIMIT")

    # -------------------------------------------------
    # Invitations
    # -------------------------------------------------
    INVITATION_TTL_DAYS: int = Field(7, env="INVITATION_TTL_DAYS", description="Days until a new invitation expires (default: 7)")
    INVITATION_TOKEN_BYTES: int = Field(24, env="INVITATION_TOKEN_BYTES")
    # e.g. "https://admin.example.com/invite/{token}"
    INVITATION_ACCEPT_URL: Optional[str] = Field(None, env="INVITATION_ACCEPT_URL")
    SEND_INVITATION_EMAILS: bool = Field(True, env="SEND_INVITATION_EMAILS")

    # -------------------------------------------------
    # SMTP Email Notifications
    # -------------------------------------------------
    SMTP_HOST: Optional[str] = Field(None, env="SMTP_HOST")
    SMTP_PORT: Optional[int] = Field(None, env="SMTP_PORT")
    SMTP_USER: Optional[str] = Field(None, env="SMTP_USER")
    SMTP_PASS: Optional[str] = Field(None, env="SMTP_PASS")
    SMTP_TO: Optional[str] = Field(None, env="SMTP_TO")

    # -------------------------------------------------
    # Audit events
    # -------------------------------------------------
    # Denials below this level are not forwarded to the audit sink
    AUDIT_DENIAL_MIN_LEVEL: str = Field("warning", env="AUDIT_DENIAL_MIN_LEVEL")
    AUDIT_WEBHOOK_URL: Optional[str] = Field(None, env="AUDIT_WEBHOOK_URL")
    AUDIT_WEBHOOK_WORKERS: int = Field(2, env="AUDIT_WEBHOOK_WORKERS")
    AUDIT_PERSIST: bool = Field(True, env="AUDIT_PERSIST")

    # -------------------------------------------------
    # Expiry sweeps
    # -------------------------------------------------
    ENABLE_SCHEDULER: bool = Field(False, env="ENABLE_SCHEDULER")
    EXPIRY_SWEEP_INTERVAL_MINUTES: int = Field(15, env="EXPIRY_SWEEP_INTERVAL_MINUTES")

    # -------------------------------------------------
    # Model Config
    # -------------------------------------------------
    class Config:
        case_sensitive = True


# Instantiate settings
settings = Settings()

# -------------------------------------------------
# Build CORS list dynamically after loading settings
# -------------------------------------------------
cors_origins = []

if settings.ADMIN_PANEL_DOMAIN:
    domain = settings.ADMIN_PANEL_DOMAIN
    if not domain.startswith("http"):
        domain = f"https://{domain}"
    cors_origins.append(domain.rstrip("/"))

cors_origins.extend([d.rstrip("/") for d in settings.BACKEND_CORS_ORIGINS])

settings.BACKEND_CORS_ORIGINS = sorted(list(set(cors_origins)))
