"""Application configuration with security-first defaults.

Environment variables override all defaults.
CRITICAL: SECRET_KEY must be set in .env - will fail fast if missing in production.
"""

import os
from decimal import Decimal
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# Local development: backend/.env, never overriding real environment variables
_BACKEND_DIR = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=_BACKEND_DIR / ".env", override=False)


def _csv_env(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class Settings:
    # Database Configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./casebook.db")

    # JWT Security - CRITICAL
    SECRET_KEY: str = os.getenv("SECRET_KEY", None)
    if not SECRET_KEY:
        # Generate with: python -c "import secrets; print(secrets.token_urlsafe(32))"
        if os.getenv("ENVIRONMENT", "development") == "production":
            raise ValueError(
                "CRITICAL: SECRET_KEY must be set in production environment. "
                "Generate with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
            )
        import warnings
        warnings.warn(
            "SECRET_KEY not set in environment. Using development default. "
            "CHANGE THIS BEFORE PRODUCTION.",
            RuntimeWarning
        )
        SECRET_KEY = "development-only-weak-default-change-in-production"

    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15"))

    # CORS (Restrictive - specific origins only, no wildcards)
    CORS_ORIGINS: List[str] = _csv_env(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000",
    )
    ALLOWED_HOSTS: List[str] = _csv_env(
        "ALLOWED_HOSTS",
        "localhost,127.0.0.1,localhost:3000,127.0.0.1:3000,localhost:8000,127.0.0.1:8000",
    )

    # Tax rates as fractions (0.18 == 18%)
    GST_RATE: Decimal = Decimal(os.getenv("GST_RATE", "0.18"))
    TDS_RATE: Decimal = Decimal(os.getenv("TDS_RATE", "0.10"))
    CESS_RATE: Decimal = Decimal(os.getenv("CESS_RATE", "0"))

    # Report builder
    REPORT_QUERY_TIMEOUT_SECONDS: float = float(os.getenv("REPORT_QUERY_TIMEOUT_SECONDS", "30"))

    # Security Features
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = ENVIRONMENT == "development"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def SQL_DIALECT(self) -> str:
        """Dialect name used by the report builder ("sqlite" or "postgresql")."""
        scheme = self.DATABASE_URL.split(":", 1)[0]
        return scheme.split("+", 1)[0]


settings = Settings()
