import sqlite3
from contextlib import closing
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any, Optional

from src.core.contracts.models import ContractIdempotencyRecord, ContractRecord
from src.core.contracts.repository import ContractRepository


class SqliteContractRepository(ContractRepository):
    """One JSON document per contract, plus an idempotency mapping table."""

    def __init__(self, *, database_path: str) -> None:
        self._lock = Lock()
        self._database_path = database_path
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
            ) VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(contract_id) DO UPDATE SET
                stage=excluded.stage,
                updated_at=excluded.updated_at,
                revision=excluded.revision,
                document_json=excluded.document_json
        """
        with self._lock, closing(self._connect()) as connection:
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
        query = "SELECT document_json FROM contract_documents WHERE contract_id = ?"
        with closing(self._connect()) as connection:
            row = connection.execute(query, (contract_id,)).fetchone()
        return _to_contract(row)

    def delete_contract(self, *, contract_id: str) -> None:
        with self._lock, closing(self._connect()) as connection:
            connection.execute(
                "DELETE FROM contract_documents WHERE contract_id = ?", (contract_id,)
            )
            connection.commit()

    def list_contracts(
        self,
        *,
        stage: Optional[str],
        limit: int,
        cursor: Optional[str],
    ) -> tuple[list[ContractRecord], Optional[str]]:
        clauses: list[str] = []
        params: list[Any] = []
        if stage is not None:
            clauses.append("stage = ?")
            params.append(stage)

        with closing(self._connect()) as connection:
            if cursor:
                anchor = connection.execute(
                    "SELECT created_at, contract_id FROM contract_documents WHERE contract_id = ?",
                    (cursor,),
                ).fetchone()
                if anchor is not None:
                    clauses.append("(created_at < ? OR (created_at = ? AND contract_id < ?))")
                    params.extend(
                        [anchor["created_at"], anchor["created_at"], anchor["contract_id"]]
                    )
            where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
            rows = connection.execute(
                f"""
                SELECT document_json
                FROM contract_documents
                {where}
                ORDER BY created_at DESC, contract_id DESC
                LIMIT ?
                """,
                (*params, limit + 1),
            ).fetchall()

        records = [record for record in (_to_contract(row) for row in rows) if record is not None]
        page = records[:limit]
        next_cursor = page[-1].contract_id if len(records) > limit else None
        return page, next_cursor

    def get_idempotency(self, *, idempotency_key: str) -> Optional[ContractIdempotencyRecord]:
        query = """
            SELECT idempotency_key, request_hash, contract_id, created_at
            FROM contract_idempotency
            WHERE idempotency_key = ?
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
            ) VALUES (?, ?, ?, ?)
            ON CONFLICT(idempotency_key) DO UPDATE SET
                request_hash=excluded.request_hash,
                contract_id=excluded.contract_id,
                created_at=excluded.created_at
        """
        with self._lock, closing(self._connect()) as connection:
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
        with self._lock, closing(self._connect()) as connection:
            connection.execute(
                "DELETE FROM contract_idempotency WHERE idempotency_key = ?", (idempotency_key,)
            )
            connection.commit()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._database_path)
        connection.row_factory = sqlite3.Row
        return connection

    def _init_db(self) -> None:
        Path(self._database_path).parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as connection:
            connection.executescript(
                """
                CREATE TABLE IF NOT EXISTS contract_documents (
                    contract_id TEXT PRIMARY KEY,
                    stage TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    revision INTEGER NOT NULL,
                    document_json TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_contract_documents_created
                    ON contract_documents (created_at, contract_id);

                CREATE TABLE IF NOT EXISTS contract_idempotency (
                    idempotency_key TEXT PRIMARY KEY,
                    request_hash TEXT NOT NULL,
                    contract_id TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
                """
            )
            connection.commit()


def _to_contract(row: Optional[sqlite3.Row]) -> Optional[ContractRecord]:
    if row is None:
        return None
    return ContractRecord.model_validate_json(row["document_json"])
