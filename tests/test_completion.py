import pytest

from app.core.exceptions import Forbidden, InvalidCompletionRequest, InvalidTransition
from app.modules.transfers.schemas import (
    CompletionMode, CompletionRequest, DocumentType, ForwardRequest,
    StatusChangeRequest, TransferCreate, TransferStatus
)
from app.modules.transfers.service import TransferService
from app.shared.storage import StoredFile

from tests.conftest import make_transfer_data


@pytest.fixture
def service(db, storage):
    return TransferService(db, storage)


@pytest.fixture
def forwarded(service, users):
    """Transfer approved and assigned to `officer`"""
    created = service.create_transfer(TransferCreate(**make_transfer_data()), users["agent"])
    service.forward_to_officer(
        created.id,
        ForwardRequest(treasury_officer_id=users["officer"].id, comment="checked"),
        users["ops"],
    )
    return created


def stored_file(name="proof.pdf") -> StoredFile:
    return StoredFile(name, f"doc-1-{name}", f"/uploads/doc-1-{name}", ".pdf", 2048)


def test_above_threshold_without_documents_is_refused(service, forwarded, users):
    with pytest.raises(InvalidCompletionRequest):
        service.complete_transfer(
            forwarded.id, CompletionRequest(mode=CompletionMode.ABOVE), [], users["officer"]
        )

    assert service.get_transfer_detail(forwarded.id).status == TransferStatus.APPROVED


@pytest.mark.parametrize("comment", [None, "", "   "])
def test_below_threshold_without_comment_is_refused(service, forwarded, users, comment):
    with pytest.raises(InvalidCompletionRequest):
        service.complete_transfer(
            forwarded.id,
            CompletionRequest(mode=CompletionMode.BELOW, comment=comment),
            [],
            users["officer"],
        )

    assert len(service.get_status_history(forwarded.id)) == 1


def test_completion_below_threshold(service, forwarded, users):
    result = service.complete_transfer(
        forwarded.id,
        CompletionRequest(mode=CompletionMode.BELOW, comment="Paid by SWIFT MT103"),
        [],
        users["officer"],
    )

    assert result.status == TransferStatus.DONE
    history = service.get_status_history(forwarded.id)
    assert [h.status for h in history] == ["Done", "Approved"]
    assert history[0].comment == "Marked as done (Below threshold): Paid by SWIFT MT103"
    assert history[0].actor_id == users["officer"].id


def test_completion_above_threshold_records_documents(service, forwarded, users):
    result = service.complete_transfer(
        forwarded.id,
        CompletionRequest(mode=CompletionMode.ABOVE),
        [stored_file("a.pdf"), stored_file("b.pdf")],
        users["officer"],
    )

    assert result.status == TransferStatus.DONE
    assert result.document_count == 2

    detail = service.get_transfer_detail(forwarded.id)
    assert {d.document_type for d in detail.documents} == {DocumentType.COMPLETION.value}
    assert detail.status_history[0].comment == "Marked as done (Above threshold) with 2 document(s)"


def test_completion_requires_approved_status(service, users):
    created = service.create_transfer(TransferCreate(**make_transfer_data()), users["agent"])

    with pytest.raises(InvalidTransition) as exc:
        service.complete_transfer(
            created.id,
            CompletionRequest(mode=CompletionMode.BELOW, comment="paid"),
            [],
            users["admin"],
        )

    assert exc.value.reason == "Only approved transfers can be marked as done"


def test_failed_completion_keeps_no_documents(service, users):
    created = service.create_transfer(TransferCreate(**make_transfer_data()), users["agent"])

    with pytest.raises(InvalidTransition):
        service.complete_transfer(
            created.id,
            CompletionRequest(mode=CompletionMode.ABOVE),
            [stored_file()],
            users["admin"],
        )

    assert service.get_transfer_detail(created.id).documents == []


def test_only_the_assigned_officer_may_complete(service, forwarded, users):
    with pytest.raises(Forbidden):
        service.complete_transfer(
            forwarded.id,
            CompletionRequest(mode=CompletionMode.BELOW, comment="paid"),
            [],
            users["other_officer"],
        )

    assert service.get_transfer_detail(forwarded.id).status == TransferStatus.APPROVED


def test_full_scenario(service, users):
    created = service.create_transfer(TransferCreate(**make_transfer_data()), users["agent"])
    assert created.status == TransferStatus.PENDING
    assert service.get_status_history(created.id) == []

    service.forward_to_officer(
        created.id,
        ForwardRequest(treasury_officer_id=users["officer"].id, comment="approve"),
        users["ops"],
    )
    assert len(service.get_status_history(created.id)) == 1

    with pytest.raises(InvalidTransition):
        service.change_status(
            created.id, StatusChangeRequest(status="Done"), users["officer"]
        )

    done = service.complete_transfer(
        created.id,
        CompletionRequest(mode=CompletionMode.BELOW, comment="settled"),
        [],
        users["officer"],
    )
    assert done.status == TransferStatus.DONE
    assert len(service.get_status_history(created.id)) == 2


def test_completion_mode_hint_follows_threshold(service, users, large_amount):
    small = service.create_transfer(TransferCreate(**make_transfer_data("10.00")), users["agent"])
    large = service.create_transfer(TransferCreate(**make_transfer_data(large_amount)), users["agent"])

    assert small.completion_mode == CompletionMode.BELOW
    assert large.completion_mode == CompletionMode.ABOVE
