import pytest

from banner_studio.core.fallback import AttemptsExhausted, attempt_in_order


@pytest.mark.asyncio
async def test_attempt_in_order_stops_at_first_accepted_result():
    # Arrange
    calls = []

    async def run(name):
        calls.append(name)
        return {"a": None, "b": "bytes-b", "c": "bytes-c"}[name]

    # Act
    outcome = await attempt_in_order(["a", "b", "c"], run, accept=lambda value: value is not None)

    # Assert
    assert outcome.succeeded
    assert outcome.value == "bytes-b"
    assert calls == ["a", "b"]
    assert outcome.winning.strategy == "b"
    assert [a.succeeded for a in outcome.attempts] == [False, True]


@pytest.mark.asyncio
async def test_attempt_in_order_records_raised_errors_and_continues():
    async def run(name):
        if name == "boom":
            raise RuntimeError("exploded")
        return name

    outcome = await attempt_in_order(["boom", "ok"], run)

    assert outcome.value == "ok"
    assert outcome.attempts[0].error_message == "exploded"


@pytest.mark.asyncio
async def test_attempt_in_order_degrades_when_everything_fails():
    async def run(name):
        raise ValueError(name)

    outcome = await attempt_in_order(["x", "y"], run, degrade=lambda: "original")

    assert not outcome.succeeded
    assert outcome.degraded
    assert outcome.value == "original"
    assert outcome.winning is None


@pytest.mark.asyncio
async def test_attempt_in_order_raises_with_last_error_without_degrade():
    async def run(name):
        raise ValueError(f"failed {name}")

    with pytest.raises(AttemptsExhausted) as exc_info:
        await attempt_in_order(["x", "y"], run)

    assert str(exc_info.value.last_error) == "failed y"
    assert len(exc_info.value.attempts) == 2


@pytest.mark.asyncio
async def test_attempt_in_order_reports_every_attempt():
    seen = []

    async def run(name):
        return name == "second"

    await attempt_in_order(["first", "second"], run, accept=bool, on_attempt=seen.append)

    assert [(a.strategy, a.succeeded) for a in seen] == [("first", False), ("second", True)]
