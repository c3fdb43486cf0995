"""Database infrastructure — engine, ORM models, and repositories."""

from safe_purchase.infrastructure.database.engine import (
    close_db,
    create_engine_from_url,
    create_tables,
    get_async_session,
    init_db,
    make_session_factory,
)
from safe_purchase.infrastructure.database.orm_models import (
    Base,
    EscrowEventRecord,
    EscrowRecord,
    LedgerAccount,
)
from safe_purchase.infrastructure.database.repositories import (
    EscrowRepository,
    LedgerRepository,
    restore_machine,
    to_domain_event,
)

__all__ = [
    "Base",
    "EscrowEventRecord",
    "EscrowRecord",
    "LedgerAccount",
    "EscrowRepository",
    "LedgerRepository",
    "restore_machine",
    "to_domain_event",
    "create_engine_from_url",
    "create_tables",
    "make_session_factory",
    "get_async_session",
    "init_db",
    "close_db",
]
