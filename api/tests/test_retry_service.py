"""
Tests for the bounded generate-then-accept loop.
"""
from unittest.mock import AsyncMock

import pytest

from core.exceptions import GenerationError
from services.acceptance_service import AcceptanceResult
from services.retry_service import run_with_acceptance


def accept_only(*good):
    async def accept(image):
        if image in good:
            return AcceptanceResult(accepted=True)
        return AcceptanceResult(accepted=False, reason=f"{image} rejected")

    return accept


@pytest.mark.asyncio
async def test_first_attempt_accepted():
    generate = AsyncMock(return_value="good")

    outcome = await run_with_acceptance(generate, accept_only("good"), max_attempts=3)

    assert outcome.accepted
    assert outcome.image == "good"
    assert outcome.attempts == 1
    generate.assert_awaited_once()


@pytest.mark.asyncio
async def test_retries_until_accepted():
    generate = AsyncMock(side_effect=["bad", "good"])

    outcome = await run_with_acceptance(generate, accept_only("good"), max_attempts=2)

    assert outcome.accepted
    assert outcome.attempts == 2


@pytest.mark.asyncio
async def test_exhausted_returns_last_image_unaccepted():
    generate = AsyncMock(side_effect=["bad1", "bad2"])

    outcome = await run_with_acceptance(generate, accept_only(), max_attempts=2)

    assert not outcome.accepted
    assert outcome.image == "bad2"
    assert outcome.attempts == 2
    assert outcome.reason == "bad2 rejected"


@pytest.mark.asyncio
async def test_generation_error_uses_an_attempt():
    generate = AsyncMock(side_effect=[GenerationError("boom"), "good"])

    outcome = await run_with_acceptance(generate, accept_only("good"), max_attempts=2)

    assert outcome.accepted
    assert outcome.attempts == 2


@pytest.mark.asyncio
async def test_error_after_image_keeps_the_image():
    generate = AsyncMock(side_effect=["bad", GenerationError("boom")])

    outcome = await run_with_acceptance(generate, accept_only(), max_attempts=2)

    assert not outcome.accepted
    assert outcome.image == "bad"


@pytest.mark.asyncio
async def test_no_image_raises_last_error():
    generate = AsyncMock(side_effect=[GenerationError("first"), GenerationError("second")])

    with pytest.raises(GenerationError, match="second"):
        await run_with_acceptance(generate, accept_only(), max_attempts=2)


@pytest.mark.asyncio
async def test_other_errors_propagate():
    generate = AsyncMock(side_effect=RuntimeError("unexpected"))

    with pytest.raises(RuntimeError):
        await run_with_acceptance(generate, accept_only(), max_attempts=3)

    generate.assert_awaited_once()


@pytest.mark.asyncio
async def test_invalid_max_attempts():
    with pytest.raises(ValueError):
        await run_with_acceptance(AsyncMock(), accept_only(), max_attempts=0)
