from typing import Annotated, Optional

from fastapi import Depends, status

from src.api.routers import contracts as shared
from src.api.routers.contract_http_errors import raise_contract_http_exception
from src.core.contracts import (
    ContractEventTimelineResponse,
    ContractLifecycleError,
    ContractSupportabilityConfigResponse,
    ContractWorkflowService,
)


@shared.router.get(
    "/contracts/supportability/config",
    response_model=ContractSupportabilityConfigResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Contract Supportability Configuration",
    description=(
        "Returns contract store and settlement configuration plus backend initialization "
        "status for operational diagnostics without direct database access."
    ),
)
def get_contract_supportability_config() -> ContractSupportabilityConfigResponse:
    shared._assert_support_apis_enabled()
    backend_error: Optional[str] = None
    backend_ready = True
    try:
        shared.contracts_config.build_repository()
    except RuntimeError as exc:
        backend_ready = False
        backend_error = str(exc)

    return ContractSupportabilityConfigResponse(
        store_backend=shared.contracts_config.contract_store_backend_name(),
        backend_ready=backend_ready,
        backend_init_error=backend_error,
        settlement_backend=shared.contracts_config.settlement_backend_name(),
        lifecycle_enabled=shared.env_flag("CONTRACT_LIFECYCLE_ENABLED", True),
        support_apis_enabled=shared.env_flag("CONTRACT_SUPPORT_APIS_ENABLED", True),
    )


@shared.router.get(
    "/contracts/{contract_id}/events",
    response_model=ContractEventTimelineResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Contract Event Journal",
    description=(
        "Returns the append-only event journal for investigation, settlement reconciliation "
        "and audit."
    ),
)
def get_contract_events(
    contract_id: shared.ContractIdPath,
    service: Annotated[
        ContractWorkflowService, Depends(shared.get_contract_workflow_service)
    ] = None,
) -> ContractEventTimelineResponse:
    shared._assert_lifecycle_enabled()
    shared._assert_support_apis_enabled()
    try:
        return service.list_events(contract_id=contract_id)
    except ContractLifecycleError as exc:
        raise_contract_http_exception(exc)
