from copy import deepcopy
from threading import Lock
from typing import Sequence

from src.core.contracts.models import ContractEventRecord
from src.core.contracts.repository import SettlementGateway


class InMemorySettlementGateway(SettlementGateway):
    """Append-only journal of published contract events, kept per contract."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._journal: dict[str, list[ContractEventRecord]] = {}

    def publish(self, *, contract_id: str, events: Sequence[ContractEventRecord]) -> None:
        with self._lock:
            self._journal.setdefault(contract_id, []).extend(deepcopy(list(events)))

    def published(self, contract_id: str) -> list[ContractEventRecord]:
        with self._lock:
            return deepcopy(self._journal.get(contract_id, []))
