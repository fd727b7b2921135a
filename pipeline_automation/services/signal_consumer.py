import asyncio
import logging

from pydantic import ValidationError
from redis.asyncio import Redis

from pipeline_automation.schemas.signal import Signal
from pipeline_automation.services.automation_engine import AutomationEngine

logger = logging.getLogger(__name__)

# Pause after a failed cycle so a dead Redis does not spin the loop
_ERROR_BACKOFF_SECONDS: int = 5


async def consume_next_signal(
    redis: Redis,
    engine: AutomationEngine,
    queue_key: str,
    poll_timeout: int,
) -> int:
    """One-shot: pop one queued signal (waiting up to *poll_timeout*) and run it.

    Producers push JSON-encoded signals onto the Redis list *queue_key*.
    A payload that is not a valid signal is logged and dropped.

    Returns the number of log entries written.
    """
    item = await redis.blpop([queue_key], timeout=poll_timeout)
    if item is None:
        return 0

    _, payload = item
    try:
        signal = Signal.model_validate_json(payload)
    except ValidationError as exc:
        logger.warning(
            "Dropping malformed signal from %s: %d validation error(s)",
            queue_key,
            exc.error_count(),
        )
        return 0

    entries = await engine.process_signal(signal)
    return len(entries)


async def start_signal_consumer_loop(
    redis: Redis,
    engine: AutomationEngine,
    queue_key: str,
    poll_timeout: int = 5,
) -> None:
    """Infinite loop feeding queued signals to the engine.

    Parameters:
        redis: Async Redis client holding the signal queue.
        engine: The process-wide :class:`AutomationEngine`.
        queue_key: Redis list producers push signals onto.
        poll_timeout: Seconds each ``BLPOP`` waits before looping.
    """
    logger.info("Signal consumer started (queue=%s)", queue_key)
    while True:
        try:
            written = await consume_next_signal(redis, engine, queue_key, poll_timeout)
            if written:
                logger.info("Signal consumer wrote %d log entr(y/ies)", written)
        except Exception:
            logger.error("Signal consumer cycle failed", exc_info=True)
            await asyncio.sleep(_ERROR_BACKOFF_SECONDS)
