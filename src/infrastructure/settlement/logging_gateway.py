import logging
from typing import Sequence

from src.core.contracts.models import ContractEventRecord
from src.core.contracts.repository import SettlementGateway

logger = logging.getLogger(__name__)


class LoggingSettlementGateway(SettlementGateway):
    """Emits one structured log record per journal entry.

    Used where settlement is handled by a downstream log consumer rather than
    an in-process journal.
    """

    def publish(self, *, contract_id: str, events: Sequence[ContractEventRecord]) -> None:
        for event in events:
            logger.info(
                "settlement.event_published",
                extra={
                    "extra_fields": {
                        "contract_id": contract_id,
                        "event_id": event.event_id,
                        "event_type": event.event_type,
                        "stage": event.stage,
                        "occurred_at": event.occurred_at.isoformat(),
                        "payload": event.payload,
                    }
                },
            )
