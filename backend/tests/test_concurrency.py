# Overview: Pytest coverage for the write-path retry wrapper.

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from backoffice.services.concurrency import run_with_retry
from backoffice.validation import ConflictError, NotFoundError, ValidationError


def _failing(exc, calls):
    def _op():
        calls.append(1)
        raise exc
    return _op


class TestRunWithRetry:

    @pytest.mark.parametrize("exc", [
        ValidationError("bad input"),
        NotFoundError("Sale", 1),
        ConflictError("Insufficient inventory"),
        KeyError("boom"),
    ])
    def test_business_and_unexpected_errors_are_not_retried(self, db_session, exc):
        calls = []
        with pytest.raises(type(exc)):
            run_with_retry(_failing(exc, calls), backoff_base=0)
        assert len(calls) == 1

    @pytest.mark.parametrize("exc", [
        OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked")),
        StaleDataError("version mismatch"),
    ])
    def test_lock_and_version_conflicts_are_retried_then_raised(self, db_session, exc):
        calls = []
        with pytest.raises(type(exc)):
            run_with_retry(_failing(exc, calls), attempts=3, backoff_base=0)
        assert len(calls) == 3

    def test_transient_failure_then_success(self, db_session):
        calls = []

        def _op():
            calls.append(1)
            if len(calls) == 1:
                raise OperationalError("UPDATE", {}, Exception("database is locked"))
            return "done"

        assert run_with_retry(_op, backoff_base=0) == "done"
        assert len(calls) == 2
