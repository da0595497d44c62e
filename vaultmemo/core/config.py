# Centralised application configuration
# (environment variables, constants, timeouts).

import os


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


DEFAULT_SECRET_KEY = "dev-change-me"


class Settings:
    APP_NAME = os.getenv("APP_NAME", "vaultmemo")
    APP_KIND = os.getenv("APP_KIND", "vault")  # "vault" or "memo"
    SECRET_KEY = os.getenv("SECRET_KEY", DEFAULT_SECRET_KEY)
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Credentials supplied by the host
    CUSTOM_PASSWORD = os.getenv("CUSTOM_PASSWORD", "")  # vault plaintext override
    ACCESS_PASSWORD = os.getenv("ACCESS_PASSWORD", "")  # memo
    ACCESS_UUID = os.getenv("ACCESS_UUID", "")  # memo
    MULTI_AUTH_CODE = os.getenv("MULTI_AUTH_CODE", "")  # optional second factor

    # Storage
    KV_BACKEND = os.getenv("KV_BACKEND", "sqlite")  # "sqlite" or "memory"
    KV_PATH = os.getenv("KV_PATH", "vaultmemo.db")
    KV_FALLBACK = _env_bool("KV_FALLBACK", "true")

    # Sessions
    VAULT_SESSION_SECONDS = int(os.getenv("VAULT_SESSION_SECONDS", "86400"))  # 24 Hours
    MEMO_SESSION_SECONDS = int(os.getenv("MEMO_SESSION_SECONDS", "7200"))  # 2 Hours
    COOKIE_SECURE = _env_bool("COOKIE_SECURE")
    TRUST_PROXY = _env_bool("TRUST_PROXY")

    # Brute-force guard
    MAX_LOGIN_ATTEMPTS = int(os.getenv("MAX_LOGIN_ATTEMPTS", "5"))
    LOCKOUT_SECONDS = int(os.getenv("LOCKOUT_SECONDS", "600"))  # 10 Minutes
    ATTEMPT_WINDOW_SECONDS = int(os.getenv("ATTEMPT_WINDOW_SECONDS", "86400"))

    # CSRF and dynamic lock
    CSRF_ENABLED = _env_bool("CSRF_ENABLED", "true")
    CSRF_TTL_SECONDS = int(os.getenv("CSRF_TTL_SECONDS", "7200"))
    DYNAMIC_LOCK_SECONDS = int(os.getenv("DYNAMIC_LOCK_SECONDS", "10"))

    CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    AUDIT_LOG_FILE = os.getenv("AUDIT_LOG_FILE", "")
    MAX_BG_IMAGE_BYTES = int(os.getenv("MAX_BG_IMAGE_BYTES", str(5 * 1024 * 1024)))

    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", "8000"))

    def session_seconds(self, kind: str) -> int:
        if kind == "memo":
            return self.MEMO_SESSION_SECONDS
        return self.VAULT_SESSION_SECONDS

    def dynamic_lock_required(self, kind: str) -> bool:
        return kind == "memo"


settings = Settings()
