import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from src.core.diagnostics import metrics, reset_metrics, track_db
from src.core.errors import TransientIO
from src.db.utils.session_management import with_retry


def locked() -> OperationalError:
    return OperationalError("INSERT INTO matches ...", {}, Exception("database is locked"))


async def test_transient_errors_are_retried():
    calls = []

    @with_retry(max_attempts=3, base_delay=0.001)
    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise locked()
        return "stored"

    assert await flaky() == "stored"
    assert len(calls) == 3


async def test_exhausted_retries_raise_transient_io():
    @with_retry(max_attempts=2, base_delay=0.001)
    async def down():
        raise locked()

    with pytest.raises(TransientIO) as exc_info:
        await down()
    assert isinstance(exc_info.value.__cause__, OperationalError)


async def test_other_errors_are_not_retried():
    calls = []

    @with_retry(max_attempts=3, base_delay=0.001)
    async def broken():
        calls.append(1)
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        await broken()
    assert len(calls) == 1


async def test_integrity_errors_are_not_transient():
    @with_retry(max_attempts=3, base_delay=0.001)
    async def duplicate():
        raise IntegrityError("INSERT ...", {}, Exception("UNIQUE constraint failed"))

    with pytest.raises(IntegrityError):
        await duplicate()


async def test_track_db_counts_calls_and_errors():
    reset_metrics()

    @track_db
    async def ok():
        return 1

    @track_db
    async def fails():
        raise RuntimeError("boom")

    await ok()
    with pytest.raises(RuntimeError):
        await fails()

    assert metrics["db_operations"] == 2
    assert metrics["db_errors"] == 1
    assert metrics["last_db_operation_time"] is not None
