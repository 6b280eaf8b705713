from src.infrastructure.settlement.in_memory import InMemorySettlementGateway
from src.infrastructure.settlement.logging_gateway import LoggingSettlementGateway

__all__ = ["InMemorySettlementGateway", "LoggingSettlementGateway"]
