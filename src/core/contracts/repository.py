from typing import Optional, Protocol, Sequence

from src.core.contracts.models import (
    ContractEventRecord,
    ContractIdempotencyRecord,
    ContractRecord,
)


class ContractRepository(Protocol):
    def save_contract(self, record: ContractRecord) -> None: ...

    def get_contract(self, *, contract_id: str) -> Optional[ContractRecord]: ...

    def delete_contract(self, *, contract_id: str) -> None: ...

    def list_contracts(
        self,
        *,
        stage: Optional[str],
        limit: int,
        cursor: Optional[str],
    ) -> tuple[list[ContractRecord], Optional[str]]: ...

    def get_idempotency(self, *, idempotency_key: str) -> Optional[ContractIdempotencyRecord]: ...

    def save_idempotency(self, record: ContractIdempotencyRecord) -> None: ...

    def delete_idempotency(self, *, idempotency_key: str) -> None: ...


class SettlementGateway(Protocol):
    def publish(self, *, contract_id: str, events: Sequence[ContractEventRecord]) -> None: ...
