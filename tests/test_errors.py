import pytest
from sqlalchemy import exc as sa_exc

from bookstore.errors import (
    ConstraintViolationError,
    DatabaseError,
    TransientDatabaseError,
    classify,
    translate_errors,
)


def test_integrity_error_is_constraint_violation():
    err = classify(sa_exc.IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")))
    assert isinstance(err, ConstraintViolationError)
    assert err.retriable is False


def test_operational_error_is_transient():
    err = classify(sa_exc.OperationalError("SELECT", {}, Exception("connection refused")))
    assert isinstance(err, TransientDatabaseError)
    assert err.retriable is True


def test_invalidated_connection_is_transient():
    err = classify(sa_exc.DBAPIError("SELECT", {}, Exception("reset"), connection_invalidated=True))
    assert isinstance(err, TransientDatabaseError)


def test_pool_timeout_is_transient():
    assert isinstance(classify(sa_exc.TimeoutError("QueuePool limit reached")), TransientDatabaseError)


def test_os_error_is_transient():
    assert isinstance(classify(ConnectionResetError("peer reset")), TransientDatabaseError)


def test_programming_error_is_plain_database_error():
    err = classify(sa_exc.ProgrammingError("SELECT", {}, Exception("no such column")))
    assert type(err) is DatabaseError
    assert err.retriable is False


def test_translate_errors_keeps_cause():
    original = sa_exc.IntegrityError("INSERT", {}, Exception("dup"))
    with pytest.raises(ConstraintViolationError) as exc_info:
        with translate_errors():
            raise original
    assert exc_info.value.__cause__ is original


def test_translate_errors_passes_other_exceptions():
    with pytest.raises(KeyError):
        with translate_errors():
            raise KeyError("not a database problem")


def test_schema_error_reported_as_operational_is_not_transient():
    err = classify(sa_exc.OperationalError("SELECT", {}, Exception("no such table: book")))
    assert type(err) is DatabaseError
    assert err.retriable is False


def test_unopenable_database_is_still_transient():
    err = classify(sa_exc.OperationalError("connect", {}, Exception("unable to open database file")))
    assert isinstance(err, TransientDatabaseError)
