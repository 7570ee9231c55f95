"""
Configuration for the feedback API

Loads environment variables (and an optional .env file) and provides
config helpers.
"""
import os
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


# ===========================
# Database
# ===========================

def get_database_url() -> Optional[str]:
    """MongoDB connection string."""
    return os.getenv("DATABASE_URL")


def get_database_name() -> Optional[str]:
    return os.getenv("DATABASE_NAME")


# ===========================
# Admin account
# ===========================

def get_admin_username() -> str:
    return os.getenv("ADMIN_USERNAME", "admin")


def get_admin_password() -> str:
    """Password for the single dashboard account."""
    return os.getenv("ADMIN_PASSWORD", "shreerath_admin_2026")


# ===========================
# Server
# ===========================

def get_cors_origins() -> List[str]:
    """
    Allowed CORS origins.

    Returns:
        List of origins parsed from the comma-separated CORS_ORIGINS
        variable, ["*"] when unset.
    """
    raw = os.getenv("CORS_ORIGINS", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def get_port() -> int:
    return int(os.getenv("PORT", "8000"))
