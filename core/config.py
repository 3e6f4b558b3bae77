from pydantic_settings import BaseSettings
from typing import List, Optional
from pydantic import Field, field_validator
from core import constants


class Settings(BaseSettings):
    # --- Portal Credentials ---
    PORTAL_USERNAME: str = Field("", description="Portal login username")
    PORTAL_PASSWORD: str = Field("", description="Portal login password")

    # --- Portal Endpoints ---
    PORTAL_URL: str = Field(constants.DEFAULT_PORTAL_URL, description="Landing page used by the session probe")
    LOGIN_URL: str = Field(constants.DEFAULT_LOGIN_URL, description="SSO login page")
    LOGIN_GATE_MARKER: str = Field(
        constants.DEFAULT_LOGIN_GATE_MARKER,
        description="Substring of the URL that identifies the login gate",
    )
    NOTIFICATIONS_URL: str = Field(constants.DEFAULT_NOTIFICATIONS_URL, description="Page listing the cases")
    PORTAL_TIMEZONE: str = Field(constants.DEFAULT_TIMEZONE, description="Timezone used for display")

    # --- Login Form ---
    USERNAME_SELECTOR: str = constants.DEFAULT_USERNAME_SELECTOR
    PASSWORD_SELECTOR: str = constants.DEFAULT_PASSWORD_SELECTOR
    SUBMIT_SELECTOR: str = constants.DEFAULT_SUBMIT_SELECTOR

    # --- Scraper ---
    ROW_SELECTOR: str = constants.DEFAULT_ROW_SELECTOR
    TITLE_SELECTOR: str = constants.DEFAULT_TITLE_SELECTOR
    DETAILS_SELECTOR: str = constants.DEFAULT_DETAILS_SELECTOR
    NOTIFICATION_SELECTOR: str = constants.DEFAULT_NOTIFICATION_SELECTOR
    CASE_NUMBER_PATTERN: str = constants.DEFAULT_CASE_NUMBER_PATTERN
    ALL_ROWS_NOTIFIED: bool = Field(
        False, description="Treat every listed row as carrying a notification"
    )
    HEADLESS_MODE: bool = Field(True, description="Run the browser headless")
    USER_AGENT: str = constants.USER_AGENT

    # --- Session Manager ---
    MAX_LOGIN_ATTEMPTS: int = Field(constants.DEFAULT_MAX_LOGIN_ATTEMPTS, ge=1)
    LOGIN_BACKOFF_SECONDS: float = Field(constants.DEFAULT_LOGIN_BACKOFF_SECONDS, ge=0)
    SESSION_TIMEOUT_SECONDS: float = Field(constants.DEFAULT_SESSION_TIMEOUT_SECONDS, gt=0)
    COOKIES_PATH: str = Field(constants.DEFAULT_COOKIES_PATH, description="Persisted credential artifact")

    # --- Dispatcher / Change Detection ---
    DISPATCH_TIMEOUT_SECONDS: float = Field(constants.DEFAULT_DISPATCH_TIMEOUT_SECONDS, gt=0)
    REPEAT_POLICY: str = Field(constants.DEFAULT_REPEAT_POLICY, description="details | never")

    # --- Scheduler ---
    CHECK_INTERVAL_MINUTES: int = Field(constants.DEFAULT_CHECK_INTERVAL_MINUTES, ge=1)
    SEND_STATUS_SUMMARY: bool = Field(True, description="Send store statistics after deliveries")

    # --- State Store ---
    STORE_BACKEND: str = Field(constants.DEFAULT_STORE_BACKEND, description="sqlite | supabase")
    DB_PATH: str = Field(constants.DEFAULT_DB_PATH, description="SQLite database file")
    SUPABASE_URL: Optional[str] = Field(None, description="Supabase Project URL")
    SUPABASE_KEY: Optional[str] = Field(None, description="Supabase Service Role Key")

    # --- Telegram ---
    TELEGRAM_TOKEN: Optional[str] = Field(
        None, description="Telegram Bot Token", validation_alias="TELEGRAM_BOT_TOKEN"
    )
    TELEGRAM_CHAT_ID: Optional[str] = Field(None, description="Target Chat ID")
    TELEGRAM_ERROR_CHAT_ID: Optional[str] = Field(
        None, description="Chat for critical alerts (defaults to TELEGRAM_CHAT_ID)"
    )

    # --- Logging ---
    LOG_LEVEL: str = Field(constants.DEFAULT_LOG_LEVEL, description="Logging level")
    LOG_FILE: str = Field(constants.DEFAULT_LOG_FILE, description="Log file path")
    LOG_FORMAT: str = Field(constants.DEFAULT_LOG_FORMAT, description="Log format (text/json)")
    LOG_MAX_BYTES: int = Field(constants.DEFAULT_LOG_MAX_BYTES, description="Max log file size")
    LOG_BACKUP_COUNT: int = Field(constants.DEFAULT_LOG_BACKUP_COUNT, description="Log backup count")

    @field_validator("REPEAT_POLICY", mode="before")
    @classmethod
    def parse_repeat_policy(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            if v not in (constants.REPEAT_POLICY_DETAILS, constants.REPEAT_POLICY_NEVER):
                raise ValueError(f"REPEAT_POLICY must be 'details' or 'never', got '{v}'")
        return v

    @field_validator("STORE_BACKEND", mode="before")
    @classmethod
    def parse_store_backend(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            if v not in (constants.STORE_BACKEND_SQLITE, constants.STORE_BACKEND_SUPABASE):
                raise ValueError(f"STORE_BACKEND must be 'sqlite' or 'supabase', got '{v}'")
        return v

    def model_post_init(self, __context):
        # Alerts go to the main chat unless a dedicated one is configured
        if not self.TELEGRAM_ERROR_CHAT_ID and self.TELEGRAM_CHAT_ID:
            self.TELEGRAM_ERROR_CHAT_ID = self.TELEGRAM_CHAT_ID

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"
        populate_by_name = True

    @property
    def check_interval_seconds(self) -> int:
        return self.CHECK_INTERVAL_MINUTES * 60

    def validate_all(self) -> List[str]:
        """
        Validate all configuration settings.
        Returns a list of warning/error messages.
        """
        errors = []

        # Critical
        if not self.PORTAL_USERNAME:
            errors.append("❌ PORTAL_USERNAME is missing")
        if not self.PORTAL_PASSWORD:
            errors.append("❌ PORTAL_PASSWORD is missing")
        if not self.TELEGRAM_TOKEN:
            errors.append("❌ TELEGRAM_BOT_TOKEN is missing")
        if not self.TELEGRAM_CHAT_ID:
            errors.append("❌ TELEGRAM_CHAT_ID is missing")

        if self.STORE_BACKEND == constants.STORE_BACKEND_SUPABASE:
            if not self.SUPABASE_URL:
                errors.append("❌ SUPABASE_URL is missing")
            if not self.SUPABASE_KEY:
                errors.append("❌ SUPABASE_KEY is missing")
            if self.SUPABASE_URL and not self.SUPABASE_URL.startswith("https://"):
                errors.append("❌ SUPABASE_URL must start with https://")

        # Warnings
        if not self.HEADLESS_MODE:
            errors.append("⚠️ HEADLESS_MODE is off - a display is required")
        if self.REPEAT_POLICY == constants.REPEAT_POLICY_NEVER:
            errors.append(
                "⚠️ REPEAT_POLICY=never - a second notification on an already notified case will not be sent"
            )

        return errors


settings = Settings()
