from contextlib import closing
from datetime import datetime
from importlib.util import find_spec
from typing import Any, Optional

from src.core.contracts.models import ContractIdempotencyRecord, ContractRecord
from src.core.contracts.repository import ContractRepository
from src.infrastructure.postgres_migrations import apply_postgres_migrations


class PostgresContractRepository(ContractRepository):
    def __init__(self, *, dsn: str) -> None:
        if not dsn:
            raise RuntimeError("CONTRACT_POSTGRES_DSN_REQUIRED")
        if find_spec("psycopg") is None:
            raise RuntimeError("CONTRACT_POSTGRES_DRIVER_MISSING")
        self._dsn = dsn
        self._init_db()

    def save_contract(self, record: ContractRecord) -> None:
        query = """
            INSERT INTO contract_documents (
                contract_id,
                stage,
                created_at,
                updated_at,
                revision,
                document_json
            ) VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (contract_id) DO UPDATE SET
                stage=excluded.stage,
                updated_at=excluded.updated_at,
                revision=excluded.revision,
                document_json=excluded.document_json
        """
        with closing(self._connect()) as connection:
            connection.execute(
                query,
                (
                    record.contract_id,
                    record.stage,
                    record.created_at.isoformat(),
                    record.updated_at.isoformat(),
                    record.revision,
                    record.model_dump_json(),
                ),
            )
            connection.commit()

    def get_contract(self, *, contract_id: str) -> Optional[ContractRecord]:
        query = """
            SELECT document_json
            FROM contract_documents
            WHERE contract_id = %s
        """
        with closing(self._connect()) as connection:
            row = connection.execute(query, (contract_id,)).fetchone()
        return _to_contract(row)

    def delete_contract(self, *, contract_id: str) -> None:
        with closing(self._connect()) as connection:
            connection.execute(
                "DELETE FROM contract_documents WHERE contract_id = %s", (contract_id,)
            )
            connection.commit()

    def list_contracts(
        self,
        *,
        stage: Optional[str],
        limit: int,
        cursor: Optional[str],
    ) -> tuple[list[ContractRecord], Optional[str]]:
        where_sql = ""
        args: list[Any] = []
        if stage is not None:
            where_sql = "WHERE stage = %s"
            args.append(stage)
        query = f"""
            SELECT contract_id, document_json
            FROM contract_documents
            {where_sql}
            ORDER BY created_at DESC, contract_id DESC
        """
        with closing(self._connect()) as connection:
            rows = connection.execute(query, tuple(args)).fetchall()
        if cursor:
            row_ids = [row["contract_id"] for row in rows]
            if cursor in row_ids:
                rows = rows[row_ids.index(cursor) + 1 :]
        page = [record for record in (_to_contract(row) for row in rows[:limit]) if record]
        next_cursor = page[-1].contract_id if len(rows) > limit and page else None
        return page, next_cursor

    def get_idempotency(self, *, idempotency_key: str) -> Optional[ContractIdempotencyRecord]:
        query = """
            SELECT
                idempotency_key,
                request_hash,
                contract_id,
                created_at
            FROM contract_idempotency
            WHERE idempotency_key = %s
        """
        with closing(self._connect()) as connection:
            row = connection.execute(query, (idempotency_key,)).fetchone()
        if row is None:
            return None
        return ContractIdempotencyRecord(
            idempotency_key=row["idempotency_key"],
            request_hash=row["request_hash"],
            contract_id=row["contract_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def save_idempotency(self, record: ContractIdempotencyRecord) -> None:
        query = """
            INSERT INTO contract_idempotency (
                idempotency_key,
                request_hash,
                contract_id,
                created_at
            ) VALUES (%s, %s, %s, %s)
            ON CONFLICT (idempotency_key) DO UPDATE SET
                request_hash=excluded.request_hash,
                contract_id=excluded.contract_id,
                created_at=excluded.created_at
        """
        with closing(self._connect()) as connection:
            connection.execute(
                query,
                (
                    record.idempotency_key,
                    record.request_hash,
                    record.contract_id,
                    record.created_at.isoformat(),
                ),
            )
            connection.commit()

    def delete_idempotency(self, *, idempotency_key: str) -> None:
        with closing(self._connect()) as connection:
            connection.execute(
                "DELETE FROM contract_idempotency WHERE idempotency_key = %s",
                (idempotency_key,),
            )
            connection.commit()

    def _connect(self):
        psycopg, dict_row = _import_psycopg()
        return psycopg.connect(self._dsn, row_factory=dict_row)

    def _init_db(self) -> None:
        with closing(self._connect()) as connection:
            apply_postgres_migrations(connection=connection, namespace="contracts")


def _import_psycopg():
    import psycopg
    from psycopg.rows import dict_row

    return psycopg, dict_row


def _to_contract(row: Optional[dict[str, Any]]) -> Optional[ContractRecord]:
    if row is None:
        return None
    return ContractRecord.model_validate_json(row["document_json"])
