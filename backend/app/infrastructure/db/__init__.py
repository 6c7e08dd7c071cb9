"""
Database Infrastructure Package for Solvex Finance

Exports database utilities and dependency providers.
"""

from app.infrastructure.db.database import (
    DatabaseManager,
    get_db_manager,
    get_session,
    init_db,
    close_db,
)

from app.infrastructure.db.dependencies import (
    SessionDep,
    SettingsDep,
    get_auth_service,
    get_subscription_reconciler,
    AuthServiceDep,
    ReconcilerDep,
)


__all__ = [
    # Database management
    "DatabaseManager",
    "get_db_manager",
    "get_session",
    "init_db",
    "close_db",
    # Dependencies
    "SessionDep",
    "SettingsDep",
    "get_auth_service",
    "get_subscription_reconciler",
    "AuthServiceDep",
    "ReconcilerDep",
]
