# utils/config.py
"""
Centralized Configuration Management

Version: 2.0.0
Features:
- Support both local (.env) and Streamlit Cloud (secrets.toml)
- Singleton pattern for efficiency
- Type-safe getters with defaults
- Database settings as a full SQLAlchemy URL or as individual parts
"""

import os
import logging
from pathlib import Path
from dotenv import load_dotenv
from typing import Dict, Any, Optional
from dataclasses import dataclass
from urllib.parse import quote_plus

# Initialize logger
logger = logging.getLogger(__name__)


def is_running_on_streamlit_cloud() -> bool:
    """Detect if running on Streamlit Cloud"""
    try:
        import streamlit as st
        return hasattr(st, 'secrets') and len(st.secrets) > 0
    except Exception:
        return False


def _as_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class DatabaseConfig:
    """Database configuration container"""
    url: Optional[str] = None
    driver: str = "mysql+pymysql"
    host: str = ""
    port: int = 3306
    user: str = ""
    password: str = ""
    database: str = "sales_dashboard"

    def is_configured(self) -> bool:
        if self.url:
            return True
        return bool(self.host and self.user)

    def build_url(self) -> str:
        """SQLAlchemy URL, preferring an explicit DATABASE_URL."""
        if self.url:
            return self.url
        password = quote_plus(str(self.password))
        return f"{self.driver}://{self.user}:{password}@{self.host}:{self.port}/{self.database}"

    def masked_url(self) -> str:
        if self.url:
            head, sep, tail = self.url.rpartition('@')
            return f"{head.split('://')[0]}://***@{tail}" if sep else self.url
        return f"{self.driver}://{self.user}:***@{self.host}:{self.port}/{self.database}"


class Config:
    """
    Centralized configuration management

    Usage:
        from utils.config import config

        # Get database settings
        db = config.get_database_config()

        # Get app settings
        limit = config.get_app_setting("LEADERBOARD_LIMIT", 10)
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self.is_cloud = is_running_on_streamlit_cloud()
        self._load_config()
        self._initialized = True

    def _load_config(self):
        """Load configuration based on environment"""
        if self.is_cloud:
            self._load_cloud_config()
        else:
            self._load_local_config()

        self._load_app_config()
        self._log_config_status()

    def _load_cloud_config(self):
        """Load configuration from Streamlit Cloud secrets"""
        import streamlit as st

        db_secrets = st.secrets.get("DB_CONFIG", {})
        self._db_config = DatabaseConfig(
            url=db_secrets.get("url"),
            driver=db_secrets.get("driver", "mysql+pymysql"),
            host=db_secrets.get("host", ""),
            port=int(db_secrets.get("port", 3306)),
            user=db_secrets.get("user", ""),
            password=db_secrets.get("password", ""),
            database=db_secrets.get("database", "sales_dashboard")
        )

        # Cloud secrets are mirrored into the environment for app settings
        for key, value in st.secrets.get("APP", {}).items():
            os.environ.setdefault(key, str(value))

        logger.info("☁️ Running in STREAMLIT CLOUD")

    def _load_local_config(self):
        """Load configuration from local .env file"""
        env_paths = [
            Path.cwd() / ".env",
            Path(__file__).parent.parent / ".env",
        ]

        for env_path in env_paths:
            if env_path.exists():
                load_dotenv(env_path)
                logger.info(f"Loaded .env from: {env_path}")
                break

        self._db_config = DatabaseConfig(
            url=os.getenv("DATABASE_URL"),
            driver=os.getenv("DB_DRIVER", "mysql+pymysql"),
            host=os.getenv("DB_HOST", ""),
            port=int(os.getenv("DB_PORT", "3306")),
            user=os.getenv("DB_USER", ""),
            password=os.getenv("DB_PASSWORD", ""),
            database=os.getenv("DB_NAME", os.getenv("DB_DATABASE", "sales_dashboard"))
        )

        if not self._db_config.is_configured():
            logger.warning("Database configuration incomplete - set DATABASE_URL or DB_HOST/DB_USER in .env")

        logger.info("💻 Running in LOCAL environment")

    def _load_app_config(self):
        """Load application-specific settings"""
        self._app_config = {
            # Database pool
            "DB_POOL_SIZE": int(os.getenv("DB_POOL_SIZE", "5")),
            "DB_POOL_RECYCLE": int(os.getenv("DB_POOL_RECYCLE", "3600")),

            # Cache
            "CACHE_TTL_SECONDS": int(os.getenv("CACHE_TTL_SECONDS", "300")),

            # Dashboard defaults
            "DEFAULT_START_DATE": os.getenv("DEFAULT_START_DATE", "2023-01-01"),
            "DEFAULT_END_DATE": os.getenv("DEFAULT_END_DATE", "2025-12-31"),
            "LEADERBOARD_LIMIT": int(os.getenv("LEADERBOARD_LIMIT", "10")),
            "TOP_CUSTOMERS_LIMIT": int(os.getenv("TOP_CUSTOMERS_LIMIT", "10")),

            # Logging
            "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO").upper(),

            # Feature flags
            "ENABLE_DEBUG_MODE": _as_bool(os.getenv("ENABLE_DEBUG_MODE"), False),
        }

    def _log_config_status(self):
        """Log configuration status"""
        if self._db_config.is_configured():
            logger.info(f"✅ Database: {self._db_config.masked_url()}")
        else:
            logger.info("⚠️ Database: Not configured")

    # ==================== PUBLIC GETTERS ====================

    def get_database_config(self) -> DatabaseConfig:
        """Get database configuration container"""
        return self._db_config

    def get_app_setting(self, key: str, default: Any = None) -> Any:
        """Get application setting with default"""
        return self._app_config.get(key, default)

    def is_feature_enabled(self, feature: str) -> bool:
        """Check if feature is enabled"""
        key = f"ENABLE_{feature.upper()}"
        return self._app_config.get(key, True)

    # ==================== PROPERTIES ====================

    @property
    def app_config(self) -> Dict[str, Any]:
        return self._app_config.copy()


# ==================== SINGLETON INSTANCE ====================

config = Config()

__all__ = [
    'config',
    'Config',
    'DatabaseConfig',
]
