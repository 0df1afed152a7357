from __future__ import annotations

import pytest

from abrha.core.exceptions import ApiError
from abrha.infra.http import HttpError
from abrha.infra.retry import on_api_error, on_status_code, retrying

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]


class Flaky:
    def __init__(self, *errors: Exception, result: str = "ok") -> None:
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


# ─── Predicates ──────────────────────────────────────────────────────


def test_on_status_code():
    predicate = on_status_code(429, 503)
    assert predicate(HttpError(status=503, body=""))
    assert predicate(ApiError(429, "slow down"))
    assert not predicate(HttpError(status=422, body=""))
    assert not predicate(ValueError("no status"))


def test_on_api_error_matches_status_and_message():
    predicate = on_api_error(422, "pending event")
    assert predicate(ApiError(422, "Vm already has a Pending Event"))
    assert not predicate(ApiError(422, "invalid size"))
    assert not predicate(ApiError(500, "pending event"))
    assert not predicate(HttpError(status=422, body="pending event"))


# ─── retrying ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_retries_until_success():
    fn = Flaky(HttpError(503, ""), HttpError(503, ""))
    result = await retrying(on_status_code(503), max_attempts=5, interval=0)(fn)
    assert result == "ok"
    assert fn.calls == 3


@pytest.mark.asyncio
async def test_reraises_last_error_when_exhausted():
    fn = Flaky(*(HttpError(503, str(i)) for i in range(5)))
    with pytest.raises(HttpError) as exc_info:
        await retrying(on_status_code(503), max_attempts=3, interval=0)(fn)
    assert exc_info.value.body == "2"
    assert fn.calls == 3


@pytest.mark.asyncio
async def test_unselected_error_is_not_retried():
    fn = Flaky(HttpError(422, "bad"))
    with pytest.raises(HttpError):
        await retrying(on_status_code(503), max_attempts=5, interval=0)(fn)
    assert fn.calls == 1


@pytest.mark.asyncio
async def test_timeout_bounds_retries():
    fn = Flaky(*(ApiError(422, "pending event") for _ in range(1000)))
    with pytest.raises(ApiError):
        await retrying(on_api_error(422, "pending event"), timeout=0.05, interval=0.01)(fn)
    assert 1 < fn.calls < 1000


@pytest.mark.asyncio
async def test_exception_class_selector():
    fn = Flaky(ConnectionError("reset"))
    assert await retrying(ConnectionError, max_attempts=2, interval=0)(fn) == "ok"

