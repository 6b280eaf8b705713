import os
from typing import cast

from src.core.contracts.repository import ContractRepository, SettlementGateway
from src.infrastructure.contracts import (
    InMemoryContractRepository,
    PostgresContractRepository,
    SqliteContractRepository,
)
from src.infrastructure.settlement import InMemorySettlementGateway, LoggingSettlementGateway


def env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def contract_store_backend_name() -> str:
    backend = os.getenv("CONTRACT_STORE_BACKEND", "IN_MEMORY").strip().upper()
    if backend in {"POSTGRES", "SQLITE"}:
        return backend
    return "IN_MEMORY"


def contract_sqlite_path() -> str:
    return os.getenv("CONTRACT_SQLITE_PATH", ".data/contracts.db")


def contract_postgres_dsn() -> str:
    return os.getenv("CONTRACT_POSTGRES_DSN", "").strip()


def settlement_backend_name() -> str:
    backend = os.getenv("CONTRACT_SETTLEMENT_BACKEND", "IN_MEMORY").strip().upper()
    return "LOG" if backend == "LOG" else "IN_MEMORY"


def _postgres_connection_exception_types() -> tuple[type[BaseException], ...]:
    types: list[type[BaseException]] = [
        ConnectionError,
        OSError,
        TimeoutError,
        ValueError,
    ]
    try:
        import psycopg
    except ImportError:
        pass
    else:
        types.append(psycopg.Error)
    return tuple(types)


def build_repository() -> ContractRepository:
    backend = contract_store_backend_name()
    if backend == "SQLITE":
        return cast(ContractRepository, SqliteContractRepository(database_path=contract_sqlite_path()))
    if backend == "POSTGRES":
        dsn = contract_postgres_dsn()
        if not dsn:
            raise RuntimeError("CONTRACT_POSTGRES_DSN_REQUIRED")
        try:
            return cast(ContractRepository, PostgresContractRepository(dsn=dsn))
        except RuntimeError:
            raise
        except _postgres_connection_exception_types() as exc:
            raise RuntimeError("CONTRACT_POSTGRES_CONNECTION_FAILED") from exc
    return cast(ContractRepository, InMemoryContractRepository())


def build_settlement_gateway() -> SettlementGateway:
    if settlement_backend_name() == "LOG":
        return cast(SettlementGateway, LoggingSettlementGateway())
    return cast(SettlementGateway, InMemorySettlementGateway())
