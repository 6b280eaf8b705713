from src.infrastructure.contracts.in_memory import InMemoryContractRepository
from src.infrastructure.contracts.postgres import PostgresContractRepository
from src.infrastructure.contracts.sqlite import SqliteContractRepository

__all__ = [
    "InMemoryContractRepository",
    "PostgresContractRepository",
    "SqliteContractRepository",
]
