"""
Bounded generate-then-accept loop.

The transport call (generate) and the acceptance heuristic (accept) are
passed in, so the same loop serves geometry checks, drift checks or both.
"""
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from core.exceptions import GenerationError
from services.acceptance_service import AcceptanceResult, AcceptPredicate

logger = logging.getLogger(__name__)


@dataclass
class AttemptOutcome:
    image: str
    attempts: int
    accepted: bool
    reason: str = ""


async def run_with_acceptance(
    generate: Callable[[], Awaitable[str]],
    accept: AcceptPredicate,
    max_attempts: int = 2,
    label: str = "generation",
) -> AttemptOutcome:
    """
    Call generate until accept passes or attempts run out.

    A GenerationError counts as a used attempt. When attempts run out the
    last produced image is returned with accepted=False.

    Raises:
        ValueError: max_attempts < 1
        GenerationError: no attempt produced an image
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    last_image: Optional[str] = None
    last_reason = ""
    last_error: Optional[GenerationError] = None

    for attempt in range(1, max_attempts + 1):
        try:
            image = await generate()
        except GenerationError as e:
            last_error = e
            last_reason = str(e)
            logger.warning(f"[Retry] {label} attempt {attempt}/{max_attempts} failed: {e}")
            continue

        last_image = image
        result: AcceptanceResult = await accept(image)
        if result.accepted:
            logger.info(f"[Retry] {label} accepted on attempt {attempt}/{max_attempts}")
            return AttemptOutcome(image=image, attempts=attempt, accepted=True)

        last_reason = result.reason
        logger.info(f"[Retry] {label} attempt {attempt}/{max_attempts} rejected: {result.reason}")

    if last_image is None:
        raise last_error or GenerationError(f"{label} produced no image")

    logger.warning(f"[Retry] {label} not accepted after {max_attempts} attempts, using last result: {last_reason}")
    return AttemptOutcome(image=last_image, attempts=max_attempts, accepted=False, reason=last_reason)
