import logging

import pytest

from tender.db import database
from tender.utils.exceptions import CaseNotFoundError


class StubSession:
    def __init__(self):
        self.rolled_back = False
        self.closed = False

    def rollback(self):
        self.rolled_back = True

    def close(self):
        self.closed = True


@pytest.fixture
def stub_session(monkeypatch):
    session = StubSession()
    monkeypatch.setattr(database, "SessionLocal", lambda: session)
    return session


def test_http_errors_roll_back_without_error_log(stub_session, caplog):
    gen = database.get_db()
    assert next(gen) is stub_session

    with caplog.at_level(logging.DEBUG, logger="tender"):
        with pytest.raises(CaseNotFoundError):
            gen.throw(CaseNotFoundError("missing"))

    assert stub_session.rolled_back
    assert stub_session.closed
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]


def test_unexpected_errors_are_logged(stub_session, caplog):
    gen = database.get_db()
    next(gen)

    with caplog.at_level(logging.DEBUG, logger="tender"):
        with pytest.raises(RuntimeError):
            gen.throw(RuntimeError("connection reset"))

    assert stub_session.rolled_back
    assert stub_session.closed
    assert any(
        r.levelno == logging.ERROR and "connection reset" in r.getMessage() for r in caplog.records
    )
