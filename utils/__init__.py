# utils/__init__.py
"""
Shared Utilities Package for the Sales Analytics App

This package contains common utilities shared across all pages:
- config: Configuration management (local + Streamlit Cloud)
- db: Database connection management with pooling
- sales_analytics: Aggregation endpoints, metrics and charts

Usage:
    from utils.db import get_db_engine, execute_query_df
    from utils.config import config

    # Or import commonly used items directly
    from utils import get_db_engine, config
"""

# Configuration
from .config import (
    config,
    Config,
    DatabaseConfig,
)

# Database
from .db import (
    get_db_engine,
    check_db_connection,
    get_connection,
    execute_query_df,
    get_connection_pool_status,
)

__all__ = [
    # Config
    'config',
    'Config',
    'DatabaseConfig',

    # Database
    'get_db_engine',
    'check_db_connection',
    'get_connection',
    'execute_query_df',
    'get_connection_pool_status',
]

__version__ = '1.0.0'
