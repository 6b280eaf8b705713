import argparse
import uuid
from decimal import Decimal
from typing import Any

import httpx

LEVEL_ROLES = [
    (1, "TECHNICAL_OFFICER"),
    (2, "FINANCIAL_OFFICER"),
    (3, "LEGAL_OFFICER"),
    (4, "DEPARTMENT_HEAD"),
    (5, "EXECUTIVE_OFFICER"),
]

DEMO_BID = {
    "basic_info": {
        "builder_name": "Acme Builders",
        "agency_name": "City Works Dept",
        "project_name": "Riverside Bridge",
        "project_description": "Two-lane pedestrian bridge over the river walk.",
        "bid_amount": "1000",
        "estimated_timeline_months": 18,
    },
    "inflation_protection": {
        "inflation_clause_enabled": True,
        "inflation_percentage": "20",
    },
    "payment_schedule": [
        {"description": "Foundation Complete", "percentage": 60},
        {"description": "Final Completion", "percentage": 40},
    ],
}


class DemoRunError(RuntimeError):
    pass


def _assert(condition: bool, message: str) -> None:
    if not condition:
        raise DemoRunError(message)


def _run_step(
    client: httpx.Client,
    *,
    name: str,
    method: str,
    path: str,
    expected_http: int,
    payload: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> dict[str, Any]:
    response = client.request(method, path, json=payload, headers=headers)
    _assert(
        response.status_code == expected_http,
        f"{name}: expected HTTP {expected_http}, got {response.status_code}, body={response.text}",
    )
    if response.content:
        return response.json()
    return {}


def run_contract_demo(base_url: str) -> None:
    timeout = httpx.Timeout(30.0)
    with httpx.Client(base_url=base_url, timeout=timeout) as client:
        created = _run_step(
            client,
            name="submit_bid",
            method="POST",
            path="/contracts",
            expected_http=200,
            payload=DEMO_BID,
            headers={"Idempotency-Key": f"live-contract-demo-{uuid.uuid4().hex[:8]}"},
        )
        contract_id = created["contract"]["contract_id"]
        _assert(created["contract"]["stage"] == "APPROVAL", "submit_bid: unexpected stage")

        wrong_role = _run_step(
            client,
            name="wrong_approver",
            method="POST",
            path=f"/contracts/{contract_id}/approvals",
            expected_http=403,
            payload={"level": 1, "actor_role": "EXECUTIVE_OFFICER", "outcome": "APPROVED"},
        )
        _assert(
            wrong_role["detail"].startswith("WRONG_APPROVER"), "wrong_approver: unexpected detail"
        )

        for level, role in LEVEL_ROLES:
            decided = _run_step(
                client,
                name=f"approve_level_{level}",
                method="POST",
                path=f"/contracts/{contract_id}/approvals",
                expected_http=200,
                payload={"level": level, "actor_role": role, "outcome": "APPROVED"},
            )
        _assert(decided["stage"] == "SETTLEMENT", "approve_level_5: settlement not opened")

        _run_step(
            client,
            name="inflation_bound",
            method="POST",
            path=f"/contracts/{contract_id}/transactions",
            expected_http=422,
            payload={"milestone_index": 0, "amount": "800"},
        )

        for milestone_index, amount in [(0, "600"), (1, "400")]:
            recorded = _run_step(
                client,
                name=f"record_milestone_{milestone_index}",
                method="POST",
                path=f"/contracts/{contract_id}/transactions",
                expected_http=200,
                payload={"milestone_index": milestone_index, "amount": amount},
            )
            transaction_id = recorded["transaction"]["transaction_id"]
            verified = _run_step(
                client,
                name=f"verify_milestone_{milestone_index}",
                method="POST",
                path=f"/contracts/{contract_id}/transactions/{transaction_id}/verify",
                expected_http=200,
            )
            _assert(
                verified["milestone"]["completed"] is True,
                f"verify_milestone_{milestone_index}: milestone not completed",
            )

        totals = verified["totals"]
        _assert(
            Decimal(totals["total_verified"]) == Decimal("1000"),
            "totals: unexpected total_verified",
        )
        _assert(
            Decimal(totals["remaining_balance"]) == Decimal("0"),
            "totals: unexpected remaining_balance",
        )

        events = _run_step(
            client,
            name="event_journal",
            method="GET",
            path=f"/contracts/{contract_id}/events",
            expected_http=200,
        )
        _assert(
            events["events"][-1]["event_type"] == "MILESTONE_COMPLETED",
            "event_journal: unexpected last event",
        )

    print(f"Contract demo validation passed for {base_url} (contract_id={contract_id})")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Run the live contract lifecycle demo against an API base URL"
    )
    parser.add_argument(
        "--base-url", required=True, help="API base URL, for example http://127.0.0.1:8000"
    )
    args = parser.parse_args()
    run_contract_demo(args.base_url)
