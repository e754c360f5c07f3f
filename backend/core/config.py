import os
from dataclasses import dataclass, field
from typing import List, Literal, Optional
from dotenv import load_dotenv
import logging

logger = logging.getLogger(__name__)

# Load environment variables from .env file located in the backend directory.
# Environment variables explicitly set (e.g., by Docker Compose) take precedence.
BASE_DIR = os.path.dirname(os.path.dirname(__file__))
ENV_PATH = os.path.join(BASE_DIR, '.env')
load_dotenv(ENV_PATH)


def parse_list(value: Optional[str], default: List[str]) -> List[str]:
    """
    Parses a comma-separated or list-like string.
    Example: "FR,BE" → ["FR", "BE"], "['http://a.com', 'http://b.com']" → ["http://a.com", "http://b.com"]
    Empty values fall back to ``default``.
    """
    if not value:
        return list(default)
    value = value.strip()
    if value.startswith("[") and value.endswith("]"):
        value = value[1:-1]
    return [i.strip().strip('"').strip("'") for i in value.split(",") if i.strip()]


def parse_cors(value: Optional[str]) -> List[str]:
    """Parses CORS origins, defaulting to the usual storefront dev servers."""
    return parse_list(value, [
        "http://localhost:5173",  # Vite dev server
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    ])


class Settings:
    # --- General Environment Settings ---
    # ENVIRONMENT determines application behavior (e.g., logging level, strict validation).
    ENVIRONMENT: Literal["local", "staging", "production"] = os.getenv('ENVIRONMENT', 'local')
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')

    # --- PostgreSQL Database Configuration ---
    POSTGRES_USER: str = os.getenv('POSTGRES_USER', 'ekom')
    POSTGRES_PASSWORD: str = os.getenv('POSTGRES_PASSWORD', 'ekom_password')
    POSTGRES_SERVER: str = os.getenv('POSTGRES_SERVER', 'postgres')
    POSTGRES_PORT: int = int(os.getenv('POSTGRES_PORT', 5432))
    POSTGRES_DB: str = os.getenv('POSTGRES_DB', 'ekom_db')
    # Full database URL, takes precedence over the individual components.
    POSTGRES_DB_URL: str = os.getenv('POSTGRES_DB_URL', "")

    # SQLite fallback for local development and tests
    SQLITE_DB_PATH: str = os.getenv('SQLITE_DB_PATH', '')

    # --- Stripe ---
    STRIPE_SECRET_KEY: Optional[str] = os.getenv('STRIPE_SECRET_KEY')
    STRIPE_WEBHOOK_SECRET: Optional[str] = os.getenv('STRIPE_WEBHOOK_SECRET')
    # Pause between two provider calls during a catalog-wide resync (rate limit: 100 req/s).
    STRIPE_SYNC_DELAY_SECONDS: float = float(os.getenv('STRIPE_SYNC_DELAY_SECONDS', 0.1))

    # --- Checkout policy ---
    CHECKOUT_CURRENCY: str = os.getenv('CHECKOUT_CURRENCY', 'eur')
    CHECKOUT_LOCALE: str = os.getenv('CHECKOUT_LOCALE', 'fr')
    CHECKOUT_SESSION_TTL_MINUTES: int = int(os.getenv('CHECKOUT_SESSION_TTL_MINUTES', 30))
    DEFAULT_SHIPPING_COUNTRIES: List[str] = parse_list(
        os.getenv('DEFAULT_SHIPPING_COUNTRIES'), ["FR", "BE", "CH", "LU", "MC"])

    # --- Mailgun Configuration ---
    MAILGUN_API_KEY: str = os.getenv('MAILGUN_API_KEY', '')
    MAILGUN_DOMAIN: str = os.getenv('MAILGUN_DOMAIN', '')
    MAILGUN_FROM_EMAIL: str = os.getenv('MAILGUN_FROM_EMAIL', 'E-commerce <noreply@example.com>')
    EMAIL_REPLY_TO: str = os.getenv('EMAIL_REPLY_TO', 'support@example.com')
    SHOP_NAME: str = os.getenv('SHOP_NAME', 'Votre E-commerce')

    # --- Storefront ---
    # FRONTEND_URL is the storefront base URL, used for checkout redirects.
    FRONTEND_URL: str = os.getenv('FRONTEND_URL', 'http://localhost:5173')
    # MEDIA_BASE_URL prefixes relative catalog image paths so the provider gets absolute URLs.
    MEDIA_BASE_URL: str = os.getenv('MEDIA_BASE_URL', os.getenv('FRONTEND_URL', 'http://localhost:5173'))

    # --- CORS Configuration ---
    RAW_CORS_ORIGINS: str = os.getenv('BACKEND_CORS_ORIGINS', '')
    BACKEND_CORS_ORIGINS: List[str] = parse_cors(RAW_CORS_ORIGINS)

    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        """
        Constructs the SQLAlchemy database URI.
        Priority: POSTGRES_DB_URL > SQLITE_DB_PATH > individual PostgreSQL components.
        """
        if self.POSTGRES_DB_URL:
            return self.POSTGRES_DB_URL
        if self.SQLITE_DB_PATH:
            return f"sqlite+aiosqlite:///{self.SQLITE_DB_PATH}"
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


@dataclass
class EnvironmentValidationResult:
    is_valid: bool
    missing: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def error_message(self) -> Optional[str]:
        if not self.missing:
            return None
        return f"Missing required environment variables: {', '.join(self.missing)}"


REQUIRED_SECRETS = (
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
    "MAILGUN_API_KEY",
    "MAILGUN_DOMAIN",
)


def validate_startup_environment(current: Optional[Settings] = None) -> EnvironmentValidationResult:
    """Check that every secret the checkout pipeline needs is present."""
    current = current or settings
    missing = [name for name in REQUIRED_SECRETS if not getattr(current, name, None)]
    warnings = []
    if current.FRONTEND_URL.startswith("http://") and current.ENVIRONMENT == "production":
        warnings.append("FRONTEND_URL is not served over HTTPS in production")
    return EnvironmentValidationResult(is_valid=not missing, missing=missing, warnings=warnings)


# Instantiate the settings object to be used throughout the application
settings = Settings()
