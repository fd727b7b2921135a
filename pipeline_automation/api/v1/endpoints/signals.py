from fastapi import APIRouter, Depends, Request

from pipeline_automation.api.deps import get_automation_engine
from pipeline_automation.core.config import settings
from pipeline_automation.core.rate_limit import limiter
from pipeline_automation.schemas.execution_log import (
    BatchProcessingResponse,
    SignalProcessingResponse,
)
from pipeline_automation.schemas.signal import Signal, SignalBatch
from pipeline_automation.services.automation_engine import AutomationEngine

router = APIRouter(prefix="/automation/signals", tags=["Signals"])


@router.post("", response_model=SignalProcessingResponse, status_code=201)
@limiter.limit(settings.SIGNAL_INGEST_RATE_LIMIT)
async def ingest_signal(
    request: Request,
    signal: Signal,
    engine: AutomationEngine = Depends(get_automation_engine),
) -> SignalProcessingResponse:
    """Run the org's automation rules against one call signal.

    Returns one log entry per rule that matched the signal.  Duplicate
    deliveries are safe: cooldowns turn repeats into ``skipped`` entries.
    """
    entries = await engine.process_signal(signal)
    return SignalProcessingResponse(matched_rules=len(entries), entries=entries)


@router.post("/batch", response_model=BatchProcessingResponse, status_code=201)
@limiter.limit(settings.SIGNAL_INGEST_RATE_LIMIT)
async def ingest_signal_batch(
    request: Request,
    batch: SignalBatch,
    engine: AutomationEngine = Depends(get_automation_engine),
) -> BatchProcessingResponse:
    """Process several independent signals concurrently."""
    entries = await engine.process_signals(batch.signals)
    return BatchProcessingResponse(
        processed_signals=len(batch.signals), entries=entries
    )
