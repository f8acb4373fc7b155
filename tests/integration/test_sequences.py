"""Integration tests for reference number counters"""

from unittest.mock import patch
from bnpl_ledger.infrastructure.database.models import SequenceCounter
from bnpl_ledger.infrastructure.database.repositories import SequenceRepository


def test_first_use_creates_counter(db):
    sequences = SequenceRepository(db)

    assert sequences.next_value("waybill:2026") == 1
    assert sequences.next_value("waybill:2026") == 2
    assert sequences.next_value("waybill:2027") == 1
    db.commit()

    assert db.query(SequenceCounter).filter_by(scope="waybill:2026").one().next_value == 3


def test_counter_created_by_another_transaction_is_reused(db):
    """A caller that saw no row while another created it continues that counter"""
    db.add(SequenceCounter(scope="waybill:2026", next_value=5))
    db.commit()

    sequences = SequenceRepository(db)
    locked = SequenceRepository._locked
    calls = []

    def missed_first_lookup(self, scope):
        calls.append(scope)
        if len(calls) == 1:
            return None
        return locked(self, scope)

    with patch.object(SequenceRepository, "_locked", missed_first_lookup):
        assert sequences.next_value("waybill:2026") == 5
    db.commit()

    assert len(calls) == 2
    rows = db.query(SequenceCounter).filter_by(scope="waybill:2026").all()
    assert len(rows) == 1
    assert rows[0].next_value == 6
