import pytest

from app.shared.database.models import TransferDocument, TransferStatusHistory

API = "/api/v1/transfers"


@pytest.fixture
def create_transfer(client, auth_headers, transfer_data):
    def create(**overrides):
        response = client.post(API, json=transfer_data(**overrides), headers=auth_headers("agent"))
        assert response.status_code == 201, response.text
        return response.json()
    return create


@pytest.fixture
def approved_transfer(client, auth_headers, users, create_transfer):
    transfer = create_transfer()
    response = client.post(
        f"{API}/{transfer['id']}/forward",
        json={"treasury_officer_id": users["officer"].id, "comment": "checked"},
        headers=auth_headers("ops"),
    )
    assert response.status_code == 200, response.text
    return response.json()


def test_requests_without_token_are_rejected(client):
    response = client.get(API)

    assert response.status_code == 401
    assert response.json()["error"] == "unauthorized"


def test_agent_creates_pending_transfer(create_transfer):
    transfer = create_transfer()

    assert transfer["status"] == "Pending"
    assert transfer["completion_mode"] == "below"
    assert transfer["document_count"] == 0


def test_create_validates_payload(client, auth_headers, transfer_data):
    response = client.post(API, json=transfer_data(amount="-5"), headers=auth_headers("agent"))

    assert response.status_code == 422


@pytest.mark.parametrize("role", ["ops", "officer", "trade_desk"])
def test_only_agents_and_admins_create(client, auth_headers, transfer_data, role):
    response = client.post(API, json=transfer_data(), headers=auth_headers(role))

    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"


def test_role_check_precedes_business_rules(client, auth_headers):
    # Unknown id: a forbidden caller still gets 403, not 404
    response = client.post(
        f"{API}/does-not-exist/send-to-core-banking",
        json={"comment": "go"},
        headers=auth_headers("agent"),
    )

    assert response.status_code == 403


def test_unknown_transfer_is_404(client, auth_headers):
    response = client.get(f"{API}/does-not-exist", headers=auth_headers("agent"))

    assert response.status_code == 404
    assert response.json()["message"] == "Transfer not found"


def test_forward_approves_and_assigns(approved_transfer, users, client, auth_headers):
    assert approved_transfer["status"] == "Approved"
    assert approved_transfer["assigned_officer_id"] == users["officer"].id

    history = client.get(
        f"{API}/{approved_transfer['id']}/status-history", headers=auth_headers("ops")
    ).json()
    assert [h["status"] for h in history] == ["Approved"]
    assert history[0]["comment"] == "checked"


def test_forward_to_non_officer_is_refused(client, auth_headers, users, create_transfer):
    transfer = create_transfer()

    response = client.post(
        f"{API}/{transfer['id']}/forward",
        json={"treasury_officer_id": users["trade_desk"].id, "comment": "checked"},
        headers=auth_headers("ops"),
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Selected user is not a Treasury Officer"


def test_forward_approved_transfer_reassigns(client, auth_headers, users, approved_transfer):
    response = client.post(
        f"{API}/{approved_transfer['id']}/forward",
        json={"treasury_officer_id": users["other_officer"].id, "comment": "on leave"},
        headers=auth_headers("ops"),
    )

    assert response.status_code == 200
    assert response.json()["assigned_officer_id"] == users["other_officer"].id

    detail = client.get(f"{API}/{approved_transfer['id']}", headers=auth_headers("ops")).json()
    assert len(detail["status_history"]) == 1
    assert detail["notes"][0]["text"].endswith("on leave")

    # The previous officer lost the transfer
    response = client.post(
        f"{API}/{approved_transfer['id']}/complete",
        data={"mode": "below", "comment": "paid"},
        headers=auth_headers("officer"),
    )
    assert response.status_code == 403


def test_send_back_and_resubmit(client, auth_headers, create_transfer):
    transfer = create_transfer()

    response = client.post(
        f"{API}/{transfer['id']}/send-back", json={"comment": "missing invoice"},
        headers=auth_headers("ops"),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "Rejected"

    response = client.post(
        f"{API}/{transfer['id']}/resubmit", json={"comment": "invoice attached"},
        headers=auth_headers("agent"),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "Pending"

    history = client.get(
        f"{API}/{transfer['id']}/status-history", headers=auth_headers("agent")
    ).json()
    assert [h["status"] for h in history] == ["Pending", "Rejected"]


def test_send_back_requires_comment(client, auth_headers, create_transfer):
    transfer = create_transfer()

    response = client.post(
        f"{API}/{transfer['id']}/send-back", json={"comment": ""}, headers=auth_headers("ops")
    )

    assert response.status_code == 422


def test_generic_status_change_by_assigned_officer(client, auth_headers, approved_transfer):
    url = f"{API}/{approved_transfer['id']}/status"

    response = client.put(url, json={"status": "Done"}, headers=auth_headers("officer"))
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_transition"
    assert response.json()["message"] == "Invalid status transition from Approved to Done"

    response = client.put(url, json={"status": "Processing"}, headers=auth_headers("other_officer"))
    assert response.status_code == 403

    response = client.put(url, json={"status": "sent"}, headers=auth_headers("officer"))
    assert response.status_code == 200
    assert response.json()["status"] == "Processing"


def test_unknown_status_is_a_validation_error(client, auth_headers, approved_transfer):
    response = client.put(
        f"{API}/{approved_transfer['id']}/status", json={"status": "Archived"},
        headers=auth_headers("officer"),
    )

    assert response.status_code == 422


def test_complete_below_threshold(client, auth_headers, approved_transfer):
    response = client.post(
        f"{API}/{approved_transfer['id']}/complete",
        data={"mode": "below", "comment": "Paid"},
        headers=auth_headers("officer"),
    )

    assert response.status_code == 200, response.text
    assert response.json()["status"] == "Done"


def test_complete_above_threshold_requires_file(client, auth_headers, approved_transfer):
    response = client.post(
        f"{API}/{approved_transfer['id']}/complete",
        data={"mode": "above"},
        headers=auth_headers("officer"),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_completion_request"


def test_rejected_completion_writes_no_files(client, auth_headers, approved_transfer, upload_dir):
    response = client.post(
        f"{API}/{approved_transfer['id']}/complete",
        data={"mode": "below", "comment": "  "},
        files=[("files", ("swift.pdf", b"%PDF-1.4 confirmation", "application/pdf"))],
        headers=auth_headers("officer"),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_completion_request"
    assert not upload_dir.exists() or list(upload_dir.iterdir()) == []


def test_complete_above_threshold_with_file(client, auth_headers, approved_transfer, upload_dir):
    response = client.post(
        f"{API}/{approved_transfer['id']}/complete",
        data={"mode": "above"},
        files=[("files", ("swift.pdf", b"%PDF-1.4 confirmation", "application/pdf"))],
        headers=auth_headers("officer"),
    )

    assert response.status_code == 200, response.text
    assert response.json()["document_count"] == 1
    assert len(list(upload_dir.iterdir())) == 1


def test_upload_rejects_unsupported_extension(client, auth_headers, create_transfer, upload_dir):
    transfer = create_transfer()

    response = client.post(
        f"{API}/{transfer['id']}/documents",
        files=[("files", ("script.exe", b"MZ", "application/octet-stream"))],
        headers=auth_headers("agent"),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_document"
    assert not upload_dir.exists() or list(upload_dir.iterdir()) == []


def test_upload_supporting_documents(client, auth_headers, create_transfer):
    transfer = create_transfer()

    response = client.post(
        f"{API}/{transfer['id']}/documents",
        files=[
            ("files", ("invoice.pdf", b"%PDF-1.4 invoice", "application/pdf")),
            ("files", ("id.png", b"\x89PNG", "image/png")),
        ],
        headers=auth_headers("agent"),
    )

    assert response.status_code == 201, response.text
    documents = response.json()
    assert len(documents) == 2
    assert {d["document_type"] for d in documents} == {"supporting_document"}
    assert all(d["file_name"].startswith("doc-") for d in documents)


def test_core_banking_handoff(client, auth_headers, approved_transfer):
    response = client.post(
        f"{API}/{approved_transfer['id']}/send-to-core-banking",
        json={"comment": "batch 12"},
        headers=auth_headers("trade_desk"),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "Processing"
    assert body["core_banking_reference"].startswith("CORE-")


def test_trade_desk_notes_do_not_change_status(client, auth_headers, approved_transfer):
    response = client.post(
        f"{API}/{approved_transfer['id']}/notes", json={"note": "awaiting FX rate"},
        headers=auth_headers("trade_desk"),
    )

    assert response.status_code == 201
    detail = client.get(f"{API}/{approved_transfer['id']}", headers=auth_headers("trade_desk")).json()
    assert detail["status"] == "Approved"
    assert detail["notes"][0]["text"] == "awaiting FX rate"


def test_delete_removes_rows_and_files(client, auth_headers, create_transfer, session_factory, upload_dir):
    transfer = create_transfer()
    client.post(
        f"{API}/{transfer['id']}/documents",
        files=[("files", ("invoice.pdf", b"%PDF-1.4", "application/pdf"))],
        headers=auth_headers("agent"),
    )
    client.post(
        f"{API}/{transfer['id']}/send-back", json={"comment": "duplicate"},
        headers=auth_headers("ops"),
    )

    response = client.delete(f"{API}/{transfer['id']}", headers=auth_headers("trade_desk"))

    assert response.status_code == 200
    body = response.json()
    assert body["documents_deleted"] == 1
    assert body["files_deleted"]["successful"] == 1
    assert list(upload_dir.iterdir()) == []

    session = session_factory()
    try:
        assert session.query(TransferStatusHistory).filter_by(transfer_id=transfer["id"]).count() == 0
        assert session.query(TransferDocument).filter_by(transfer_id=transfer["id"]).count() == 0
    finally:
        session.close()

    assert client.get(f"{API}/{transfer['id']}", headers=auth_headers("agent")).status_code == 404


def test_admin_update_cannot_touch_status(client, auth_headers, create_transfer):
    transfer = create_transfer()

    response = client.patch(
        f"{API}/{transfer['id']}",
        json={"beneficiary_bank_swift": "BNPAFRPP", "status": "Done"},
        headers=auth_headers("admin"),
    )

    assert response.status_code == 200
    assert response.json()["beneficiary_bank_swift"] == "BNPAFRPP"
    assert response.json()["status"] == "Pending"

    response = client.patch(
        f"{API}/{transfer['id']}", json={"amount": "1.00"}, headers=auth_headers("agent")
    )
    assert response.status_code == 403


def test_list_by_status_and_stats(client, auth_headers, create_transfer, approved_transfer):
    create_transfer()

    pending = client.get(API, params={"status": "En Attente"}, headers=auth_headers("ops")).json()
    assert [t["status"] for t in pending] == ["Pending"]

    approved = client.get(API, params={"status": "Approved"}, headers=auth_headers("ops")).json()
    assert [t["id"] for t in approved] == [approved_transfer["id"]]

    response = client.get(API, params={"status": "Archived"}, headers=auth_headers("ops"))
    assert response.status_code == 400

    stats = client.get(f"{API}/stats", headers=auth_headers("ops")).json()
    assert stats["total"] == 2
    assert stats["pending"] == 1
    assert stats["approved"] == 1


def test_assigned_transfers(client, auth_headers, approved_transfer):
    mine = client.get(f"{API}/assigned", headers=auth_headers("officer")).json()
    theirs = client.get(f"{API}/assigned", headers=auth_headers("other_officer")).json()

    assert [t["id"] for t in mine] == [approved_transfer["id"]]
    assert theirs == []
    assert client.get(f"{API}/assigned", headers=auth_headers("agent")).status_code == 403
