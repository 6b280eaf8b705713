from copy import deepcopy
from threading import Lock
from typing import Optional

from src.core.contracts.models import ContractIdempotencyRecord, ContractRecord
from src.core.contracts.repository import ContractRepository


class InMemoryContractRepository(ContractRepository):
    def __init__(self) -> None:
        self._lock = Lock()
        self._contracts: dict[str, ContractRecord] = {}
        self._idempotency: dict[str, ContractIdempotencyRecord] = {}

    def save_contract(self, record: ContractRecord) -> None:
        with self._lock:
            self._contracts[record.contract_id] = deepcopy(record)

    def get_contract(self, *, contract_id: str) -> Optional[ContractRecord]:
        with self._lock:
            record = self._contracts.get(contract_id)
            return deepcopy(record) if record is not None else None

    def delete_contract(self, *, contract_id: str) -> None:
        with self._lock:
            self._contracts.pop(contract_id, None)

    def list_contracts(
        self,
        *,
        stage: Optional[str],
        limit: int,
        cursor: Optional[str],
    ) -> tuple[list[ContractRecord], Optional[str]]:
        with self._lock:
            rows = list(self._contracts.values())

        rows = sorted(rows, key=lambda x: (x.created_at, x.contract_id), reverse=True)
        if stage is not None:
            rows = [row for row in rows if row.stage == stage]

        if cursor:
            row_ids = [row.contract_id for row in rows]
            if cursor in row_ids:
                rows = rows[row_ids.index(cursor) + 1 :]

        page = rows[:limit]
        next_cursor = page[-1].contract_id if len(rows) > limit else None
        return [deepcopy(row) for row in page], next_cursor

    def get_idempotency(self, *, idempotency_key: str) -> Optional[ContractIdempotencyRecord]:
        with self._lock:
            record = self._idempotency.get(idempotency_key)
            return deepcopy(record) if record is not None else None

    def save_idempotency(self, record: ContractIdempotencyRecord) -> None:
        with self._lock:
            self._idempotency[record.idempotency_key] = deepcopy(record)

    def delete_idempotency(self, *, idempotency_key: str) -> None:
        with self._lock:
            self._idempotency.pop(idempotency_key, None)
