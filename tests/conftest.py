"""
FILE: tests/conftest.py
Shared fixtures for contract lifecycle tests.
"""

from decimal import Decimal
from pathlib import Path

import pytest

from src.core.contracts import BidBasicInfo, ContractCreateRequest, InflationProtection


def _has_marker(item: pytest.Item, name: str) -> bool:
    return item.get_closest_marker(name) is not None


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        if (
            _has_marker(item, "unit")
            or _has_marker(item, "integration")
            or _has_marker(item, "e2e")
        ):
            continue

        path = Path(str(item.fspath)).as_posix().lower()
        if "/tests/integration/" in path or "_integration.py" in path:
            item.add_marker(pytest.mark.integration)
            continue
        if "/tests/e2e/" in path:
            item.add_marker(pytest.mark.e2e)
            continue
        item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def contract_runtime_defaults(monkeypatch: pytest.MonkeyPatch):
    """Pin runtime configuration so host environment variables never leak into tests."""

    monkeypatch.setenv("CONTRACT_STORE_BACKEND", "IN_MEMORY")
    monkeypatch.setenv("CONTRACT_SETTLEMENT_BACKEND", "IN_MEMORY")
    monkeypatch.setenv("APP_PERSISTENCE_PROFILE", "LOCAL")
    monkeypatch.delenv("CONTRACT_POSTGRES_DSN", raising=False)
    monkeypatch.delenv("CONTRACT_LIFECYCLE_ENABLED", raising=False)
    monkeypatch.delenv("CONTRACT_SUPPORT_APIS_ENABLED", raising=False)


@pytest.fixture
def basic_info() -> BidBasicInfo:
    return BidBasicInfo(
        builder_name="Acme Builders",
        agency_name="City Works Dept",
        project_name="Riverside Bridge",
        project_description="Two-lane pedestrian bridge over the river walk.",
        bid_amount=Decimal("1000"),
        estimated_timeline_months=18,
    )


@pytest.fixture
def inflation_clause() -> InflationProtection:
    return InflationProtection(inflation_clause_enabled=True, inflation_percentage=Decimal("20"))


@pytest.fixture
def create_request(basic_info, inflation_clause) -> ContractCreateRequest:
    return ContractCreateRequest(
        basic_info=basic_info,
        inflation_protection=inflation_clause,
        payment_schedule=[
            {"description": "Foundation Complete", "percentage": 60},
            {"description": "Final Completion", "percentage": 40},
        ],
    )
