import pytest

from engine.sessions import SessionConflict, SessionTable


def test_sessions_are_symmetric():
    table = SessionTable()
    table.start(1, 2, 5.0)
    assert table.partner_of(1) == 2
    assert table.partner_of(2) == 1
    assert table.started_at(2) == 5.0
    assert list(table.pairs()) == [(1, 2)]
    assert table.count() == 1


def test_busy_user_cannot_start_another_session():
    table = SessionTable()
    table.start(1, 2)
    with pytest.raises(SessionConflict):
        table.start(2, 3)
    with pytest.raises(SessionConflict):
        table.start(4, 4)
    assert 3 not in table


def test_end_is_idempotent():
    table = SessionTable()
    table.start(1, 2)
    assert table.end(2) == 1
    assert table.end(1) is None
    assert table.partner_of(1) is None
    assert table.count() == 0
