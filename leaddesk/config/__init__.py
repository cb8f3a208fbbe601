"""
Backend config: load from env.

load_postgres_config() for the database, load_api_config() for the HTTP layer.
"""
from leaddesk.config.api import ApiConfig, load_api_config
from leaddesk.config.postgres import PostgresConfig, load_postgres_config

__all__ = [
    "ApiConfig",
    "load_api_config",
    "PostgresConfig",
    "load_postgres_config",
]
