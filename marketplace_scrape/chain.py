import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .errors import (AntiBotBlock, ExternalServiceUnavailable, ScrapeError, TransientNetworkError,
                     ValidationFailure)
from .normalizer import accept, is_http_url
from .schema import ProductRecord
from .strategies import (BLOCKED, ERROR, INVALID_IMAGE, NETWORK, REJECTED, UNAVAILABLE, Attempt, Strategy,
                         StrategyContext)

logger = logging.getLogger(__name__)


@dataclass
class ChainOutcome:
    record: Optional[ProductRecord] = None
    candidate: Optional[Dict[str, Any]] = None
    attempts: List[Attempt] = field(default_factory=list)
    blocked: bool = False


async def _run_one(strategy: Strategy, url: str, ctx: StrategyContext) -> Attempt:
    try:
        return await strategy.attempt(url, ctx)
    except AntiBotBlock as e:
        return Attempt.failed(strategy.name, BLOCKED, e.detail)
    except TransientNetworkError as e:
        return Attempt.failed(strategy.name, NETWORK, str(e))
    except ExternalServiceUnavailable as e:
        return Attempt.failed(strategy.name, UNAVAILABLE, str(e))
    except ScrapeError as e:
        return Attempt.failed(strategy.name, ERROR, str(e))
    except Exception as e:
        logger.exception("[Chain] %s raised unexpectedly on %s", strategy.name, url)
        return Attempt.failed(strategy.name, ERROR, f"{type(e).__name__}: {e}")


async def run_chain(strategies: Sequence[Strategy], url: str, ctx: StrategyContext) -> ChainOutcome:
    """
    Try strategies in order until one yields a candidate the quality gate
    accepts. Never raises; the outcome says whether anything along the way
    looked like an anti-bot challenge.
    """
    marketplace = ctx.adapter.marketplace
    outcome = ChainOutcome(blocked=ctx.resolution.gated)

    for strategy in strategies:
        attempt = await _run_one(strategy, url, ctx)
        outcome.attempts.append(attempt)

        if attempt.candidate is None:
            if attempt.failure == BLOCKED:
                outcome.blocked = True
            logger.info("[Chain] %s: %s %s", strategy.name, attempt.failure, attempt.detail)
            continue

        image = attempt.candidate.get("image_url")
        if not is_http_url(image):
            attempt.failure = INVALID_IMAGE
            logger.warning("[Chain] %s: degraded render, image %r, moving on", strategy.name, image)
            continue

        try:
            record = accept(
                attempt.candidate,
                marketplace=marketplace,
                product_url=ctx.options.original_url or ctx.resolution.original_url,
                fields=ctx.options.fields,
            )
        except AntiBotBlock as e:
            attempt.failure = BLOCKED
            outcome.blocked = True
            logger.warning("[Chain] %s: candidate rejected as challenge page (%s)", strategy.name, e.detail)
            continue
        except ValidationFailure as e:
            attempt.failure = REJECTED
            logger.info("[Chain] %s: candidate rejected: %s", strategy.name, e.reason)
            continue

        logger.info("[Chain] %s accepted for %s", strategy.name, url)
        outcome.record = record
        outcome.candidate = attempt.candidate
        return outcome

    logger.warning("[Chain] exhausted %d strategies for %s (blocked=%s)",
                   len(outcome.attempts), url, outcome.blocked)
    return outcome
