import threading

from app.core.exceptions import InvalidTransition
from app.modules.transfers.executor import TransitionExecutor
from app.modules.transfers.repository import TransferRepository
from app.modules.transfers.schemas import TransferCreate, TransferStatus
from app.shared.database.models import Transfer, TransferStatusHistory

from tests.conftest import make_transfer_data


def test_conflicting_transitions_only_one_wins(db, session_factory, users):
    transfer = TransferRepository(db).create_transfer(
        TransferCreate(**make_transfer_data()).model_dump(), users["agent"].id
    )
    db.commit()
    transfer_id = transfer.id

    # Both callers have read "Pending" before either writes
    barrier = threading.Barrier(2, timeout=10)
    outcomes = {}

    def attempt(name, status, comment):
        first_look = []

        def wait_for_other(locked):
            if not first_look:
                first_look.append(locked.status)
                barrier.wait()

        session = session_factory()
        try:
            TransitionExecutor(session).execute(
                transfer_id, status, comment, guard=wait_for_other
            )
            outcomes[name] = "ok"
        except Exception as e:
            outcomes[name] = e
        finally:
            session.close()

    threads = [
        threading.Thread(target=attempt, args=("approve", TransferStatus.APPROVED, "ok")),
        threading.Thread(target=attempt, args=("reject", TransferStatus.REJECTED, "missing docs")),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    winners = [name for name, outcome in outcomes.items() if outcome == "ok"]
    losers = [outcome for outcome in outcomes.values() if outcome != "ok"]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], InvalidTransition)

    db.expire_all()
    final = db.get(Transfer, transfer_id)
    expected = TransferStatus.APPROVED if winners == ["approve"] else TransferStatus.REJECTED
    assert final.status == expected.value

    history = db.query(TransferStatusHistory).filter(
        TransferStatusHistory.transfer_id == transfer_id
    ).all()
    assert [h.status for h in history] == [expected.value]
