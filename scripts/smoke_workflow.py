#!/usr/bin/env python3
"""
Workflow smoke test against a running API.

Logs in as an admin, creates one user per workflow role, then walks a
transfer through create -> forward -> complete (below threshold) and checks
the status history.

Usage:
    python scripts/smoke_workflow.py [base_url] [admin_email] [admin_password]
"""

import sys
import uuid
from typing import Dict, List, Optional

import requests

TIMEOUT = 10


class SmokeRun:

    def __init__(self, base_url: str):
        self.api = f"{base_url.rstrip('/')}/api/v1"
        self.steps: List[Dict] = []

    def login(self, email: str, password: str) -> Dict[str, str]:
        response = requests.post(
            f"{self.api}/auth/login",
            json={"email": email, "password": password},
            timeout=TIMEOUT
        )
        response.raise_for_status()
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    def step(self, name: str, response: requests.Response, expected_status: int,
             expected_body: Optional[Dict] = None) -> Dict:
        body = response.json() if response.content else {}
        ok = response.status_code == expected_status and all(
            body.get(k) == v for k, v in (expected_body or {}).items()
        )
        self.steps.append({
            "name": name,
            "status": "PASS" if ok else "FAIL",
            "http_status": response.status_code,
            "body": body if not ok else None,
        })
        return body

    def create_user(self, admin: Dict[str, str], role: str, password: str) -> Dict[str, str]:
        email = f"smoke-{role.lower()}-{uuid.uuid4().hex[:8]}@example.com"
        response = requests.post(
            f"{self.api}/users",
            json={"email": email, "password": password, "name": f"Smoke {role}", "role": role},
            headers=admin,
            timeout=TIMEOUT
        )
        user = self.step(f"create {role} user", response, 201)
        return {"id": user.get("id"), "email": email}


def run_smoke(base_url: str, admin_email: str, admin_password: str) -> SmokeRun:
    run = SmokeRun(base_url)
    password = uuid.uuid4().hex

    try:
        admin = run.login(admin_email, admin_password)
        agent_user = run.create_user(admin, "Agent", password)
        ops_user = run.create_user(admin, "TreasuryOPS", password)
        officer_user = run.create_user(admin, "TreasuryOfficer", password)

        agent = run.login(agent_user["email"], password)
        ops = run.login(ops_user["email"], password)
        officer = run.login(officer_user["email"], password)

        transfer = run.step("agent creates transfer", requests.post(
            f"{run.api}/transfers",
            json={
                "order_giver_name": "Smoke Order Giver",
                "order_giver_account": "0001",
                "order_giver_address": "1 Main St",
                "beneficiary_name": "Smoke Beneficiary",
                "beneficiary_account": "0002",
                "beneficiary_address": "2 Side St",
                "beneficiary_bank_name": "Smoke Bank",
                "beneficiary_bank_swift": "SMOKXXXX",
                "amount": "1500.00",
                "amount_in_words": "one thousand five hundred",
                "transfer_reason": "smoke test",
                "transfer_type": "international",
            },
            headers=agent,
            timeout=TIMEOUT
        ), 201, {"status": "Pending"})
        transfer_id = transfer["id"]

        run.step("agent cannot forward", requests.post(
            f"{run.api}/transfers/{transfer_id}/forward",
            json={"treasury_officer_id": officer_user["id"], "comment": "nope"},
            headers=agent,
            timeout=TIMEOUT
        ), 403)

        run.step("ops forwards to officer", requests.post(
            f"{run.api}/transfers/{transfer_id}/forward",
            json={"treasury_officer_id": officer_user["id"], "comment": "checked"},
            headers=ops,
            timeout=TIMEOUT
        ), 200, {"status": "Approved"})

        run.step("officer completes below threshold", requests.post(
            f"{run.api}/transfers/{transfer_id}/complete",
            data={"mode": "below", "comment": "paid"},
            headers=officer,
            timeout=TIMEOUT
        ), 200, {"status": "Done"})

        history = requests.get(
            f"{run.api}/transfers/{transfer_id}/status-history",
            headers=officer,
            timeout=TIMEOUT
        )
        entries = history.json() if history.ok else []
        run.steps.append({
            "name": "history has two entries, newest first",
            "status": "PASS" if [e["status"] for e in entries] == ["Done", "Approved"] else "FAIL",
            "http_status": history.status_code,
            "body": None,
        })

    except requests.exceptions.RequestException as e:
        run.steps.append({"name": "request", "status": "ERROR", "http_status": None, "body": str(e)})

    return run


def print_results(run: SmokeRun):
    print("Transfer Workflow Smoke Test")
    print("=" * 50)
    print(f"API: {run.api}")
    print()

    for step in run.steps:
        print(f"[{step['status']}] {step['name']} (HTTP {step['http_status']})")
        if step["body"]:
            print(f"   Response: {step['body']}")

    failed = sum(1 for s in run.steps if s["status"] != "PASS")
    print()
    print(f"Total: {len(run.steps)}  Failed: {failed}")


if __name__ == "__main__":
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"
    admin_email = sys.argv[2] if len(sys.argv) > 2 else "admin@example.com"
    admin_password = sys.argv[3] if len(sys.argv) > 3 else "admin123"

    run = run_smoke(base_url, admin_email, admin_password)
    print_results(run)

    if any(s["status"] != "PASS" for s in run.steps):
        sys.exit(1)
