from .connection import (
    ConnectionState,
    build_database_url,
    create_engine_from_settings,
    create_schema,
    create_session_factory,
)

__all__ = [
    "ConnectionState",
    "build_database_url",
    "create_engine_from_settings",
    "create_schema",
    "create_session_factory",
]
