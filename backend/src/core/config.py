"""
Application configuration using python-dotenv.

This module loads environment variables from .env file into os.environ
for use throughout the template engine.
"""

import os
import pathlib
from dotenv import load_dotenv


# Don't load .env file during testing to ensure predictable test behavior
is_testing = os.getenv("PYTEST_VERSION") is not None or any("pytest" in str(frame) for frame in __import__('inspect').stack(0))

if not is_testing:
    possible_paths = [
        pathlib.Path(__file__).parent.parent.parent / ".env",  # backend/.env (when run from backend/src)
        pathlib.Path(__file__).parent.parent.parent.parent / ".env",  # .env at repository root
        pathlib.Path.cwd() / ".env",
    ]

    for env_path in possible_paths:
        if env_path.exists():
            load_dotenv(env_path)
            break


def get_database_url():
    """Get the database URL from environment."""
    return os.getenv(
        "DATABASE_URL",
        "postgresql://localhost/medical_templates_dev"
    )


def _float_env(name: str, default: str) -> float:
    return float(os.getenv(name, default))


DATABASE_URL = get_database_url()
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Authentication
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

# Template recommendation policy
TEMPLATE_RECOMMENDATION_USAGE_WEIGHT = _float_env("TEMPLATE_RECOMMENDATION_USAGE_WEIGHT", "1.0")
TEMPLATE_RECOMMENDATION_USER_WEIGHT = _float_env("TEMPLATE_RECOMMENDATION_USER_WEIGHT", "3.0")
TEMPLATE_RECOMMENDATION_SPECIALTY_BOOST = _float_env("TEMPLATE_RECOMMENDATION_SPECIALTY_BOOST", "5.0")
TEMPLATE_RECOMMENDATION_DEFAULT_BOOST = _float_env("TEMPLATE_RECOMMENDATION_DEFAULT_BOOST", "1.0")

# Default-template promotion
TEMPLATE_DEFAULT_PROMOTION_MAX_RETRIES = int(os.getenv("TEMPLATE_DEFAULT_PROMOTION_MAX_RETRIES", "3"))
