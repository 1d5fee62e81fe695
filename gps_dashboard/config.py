import os
from dotenv import load_dotenv

load_dotenv()

# Values shipped in the example .env; treated the same as missing
PLACEHOLDER_VALUES = {"your_supabase_url_here", "your_supabase_anon_key_here"}


class Config:
    """Base configuration class with common settings."""
    # Data store (Supabase / PostgREST)
    SUPABASE_URL = os.environ.get("SUPABASE_URL")
    SUPABASE_ANON_KEY = os.environ.get("SUPABASE_ANON_KEY")
    STORE_TIMEOUT_SECONDS = float(os.environ.get("STORE_TIMEOUT_SECONDS", "30"))
    CLIENT_INFO = "gps-tracking-dashboard@1.0.0"

    # Initial fetch retries (reads only, mutations are never retried)
    FETCH_MAX_RETRIES = int(os.environ.get("FETCH_MAX_RETRIES", "3"))
    FETCH_RETRY_DELAY = float(os.environ.get("FETCH_RETRY_DELAY", "1.0"))

    # In-memory data cache
    CACHE_TTL_SECONDS = int(os.environ.get("CACHE_TTL_SECONDS", "300"))
    CACHE_MAX_SIZE = int(os.environ.get("CACHE_MAX_SIZE", "50"))
    CACHE_SWEEP_MINUTES = int(os.environ.get("CACHE_SWEEP_MINUTES", "5"))

    # 'single_hop' or 'transitive'
    DEPENDENCY_PROPAGATION = os.environ.get("DEPENDENCY_PROPAGATION", "single_hop")

    # Shared secret for database webhook deliveries (optional)
    REALTIME_WEBHOOK_SECRET = os.environ.get("REALTIME_WEBHOOK_SECRET")

    # CORS configuration
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FILE = os.environ.get("LOG_FILE")


class LocalConfig(Config):
    """Local development: debug mode, verbose store logging."""
    ENV = "local"
    DEBUG = True
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")


class SandboxConfig(Config):
    """Sandbox/staging: runs against the sandbox Supabase project."""
    ENV = "sandbox"
    DEBUG = False


class ProductionConfig(Config):
    """Production: file logging on by default, shorter retry backoff."""
    ENV = "production"
    DEBUG = False
    LOG_FILE = os.environ.get("LOG_FILE", "logs/app.log")
    FETCH_RETRY_DELAY = float(os.environ.get("FETCH_RETRY_DELAY", "0.5"))


ENVIRONMENTS = {
    "local": LocalConfig,
    "development": LocalConfig,
    "dev": LocalConfig,
    "sandbox": SandboxConfig,
    "staging": SandboxConfig,
    "stage": SandboxConfig,
    "production": ProductionConfig,
    "prod": ProductionConfig,
}


def get_config():
    """Configuration class for FLASK_ENV / ENVIRONMENT (defaults to LocalConfig)."""
    env = (os.environ.get("FLASK_ENV") or os.environ.get("ENVIRONMENT", "local")).strip().lower()
    # Unknown names fall back to local
    return ENVIRONMENTS.get(env, LocalConfig)


def is_store_configured(url=None, key=None) -> bool:
    """
    Check whether data store credentials are present.

    Empty values and the example placeholders both count as missing.
    """
    url = Config.SUPABASE_URL if url is None else url
    key = Config.SUPABASE_ANON_KEY if key is None else key
    if not url or not key:
        return False
    return url not in PLACEHOLDER_VALUES and key not in PLACEHOLDER_VALUES
