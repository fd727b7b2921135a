import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from pipeline_automation.core.constants import (
    COOLDOWN_ACTIVE_MESSAGE,
    LOCK_UNAVAILABLE_MESSAGE,
)
from pipeline_automation.core.exceptions import (
    CooldownLockUnavailableError,
    LogWriteError,
)
from pipeline_automation.core.locks import KeyedLockManager
from pipeline_automation.schemas.common import ExecutionStatus
from pipeline_automation.schemas.execution_log import ExecutionLogEntry
from pipeline_automation.schemas.rule import RuleDefinition
from pipeline_automation.schemas.signal import Signal
from pipeline_automation.services.action_dispatcher import (
    ActionDispatcher,
    ActionOutcome,
)
from pipeline_automation.services.capabilities import RuleLogStore
from pipeline_automation.services.cooldown import CooldownTracker
from pipeline_automation.services.rule_matcher import RuleMatcher

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AutomationEngine:
    """Run an organisation's automation rules against incoming signals.

    Per signal: load the org's active rules, keep the candidates that
    match, then for each candidate in rule-creation order

    1. take the ``(rule_id, deal_id)`` lock,
    2. check the cooldown against the log,
    3. dispatch the action if eligible,
    4. write exactly one terminal log entry (``success``, ``failed``
       or ``skipped``),
    5. release the lock.

    Nothing an action does can abort the next candidate; only a log
    write that still fails after retrying stops the signal, because an
    unlogged outcome would leave the cooldown unclaimed.  A rule with
    an unparseable ``action_config`` is logged ``failed`` without taking
    the lock; no action ran, so it claims no cooldown and the next
    signal retries it.

    The engine keeps no per-signal state and is safe to share between
    concurrent requests; the lock manager it holds must be the one
    instance used by every worker in the process.
    """

    def __init__(
        self,
        store: RuleLogStore,
        dispatcher: ActionDispatcher,
        lock_manager: Optional[KeyedLockManager] = None,
        matcher: Optional[RuleMatcher] = None,
        clock: Callable[[], datetime] = utcnow,
        max_concurrent_signals: int = 8,
        log_append_attempts: int = 3,
        log_append_backoff_seconds: float = 0.2,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._matcher = matcher or RuleMatcher()
        self._cooldown = CooldownTracker(store, lock_manager or KeyedLockManager())
        self._clock = clock
        self._max_concurrent_signals = max_concurrent_signals
        self._log_append_attempts = max(1, log_append_attempts)
        self._log_append_backoff = log_append_backoff_seconds

    async def process_signal(self, signal: Signal) -> List[ExecutionLogEntry]:
        """Evaluate every matching rule for *signal*; return the entries written.

        Raises if the org's rules cannot be loaded, and ``LogWriteError``
        if a candidate's outcome could not be logged after retrying.
        Any other failure is recorded on the candidate's log entry.
        """
        rules = await self._store.list_active_rules(signal.org_id)
        candidates = self._matcher.match(signal, rules)
        if not candidates:
            return []

        entries: List[ExecutionLogEntry] = []
        for rule in candidates:
            entries.append(await self._evaluate_candidate(rule, signal))
        return entries

    async def process_signals(
        self, signals: Iterable[Signal]
    ) -> List[ExecutionLogEntry]:
        """Process independent signals concurrently on a bounded pool.

        A signal whose rules cannot be loaded, or whose outcome could not
        be logged, is reported and contributes no entries; the rest of
        the batch is unaffected.
        """
        semaphore = asyncio.Semaphore(self._max_concurrent_signals)

        async def _worker(signal: Signal) -> List[ExecutionLogEntry]:
            async with semaphore:
                try:
                    return await self.process_signal(signal)
                except Exception:
                    logger.error(
                        "Failed to process %s signal for deal %s",
                        signal.trigger_type.value,
                        signal.deal_id,
                        exc_info=True,
                    )
                    return []

        results = await asyncio.gather(*(_worker(s) for s in signals))
        return [entry for entries in results for entry in entries]

    # ------------------------------------------------------------------
    # Per-candidate state machine
    # ------------------------------------------------------------------

    async def _evaluate_candidate(
        self, rule: RuleDefinition, signal: Signal
    ) -> ExecutionLogEntry:
        if rule.action is None:
            logger.warning(
                "Rule %s has an invalid action config: %s", rule.rule_id, rule.config_error
            )
            outcome = await self._dispatcher.dispatch(rule, signal, self._clock())
            return await self._record(rule, signal, outcome)

        try:
            async with self._cooldown.serialize(rule, signal.deal_id):
                outcome = await self._check_and_dispatch(rule, signal)
                return await self._record(rule, signal, outcome)
        except CooldownLockUnavailableError:
            return await self._record(
                rule,
                signal,
                ActionOutcome.failed(
                    LOCK_UNAVAILABLE_MESSAGE, {"error": LOCK_UNAVAILABLE_MESSAGE}
                ),
            )

    async def _check_and_dispatch(
        self, rule: RuleDefinition, signal: Signal
    ) -> ActionOutcome:
        now = self._clock()
        try:
            decision = await self._cooldown.check(rule, signal.deal_id, now)
            if not decision.eligible:
                return ActionOutcome(
                    status=ExecutionStatus.skipped,
                    error_message=COOLDOWN_ACTIVE_MESSAGE,
                )
            return await self._dispatcher.dispatch(rule, signal, now)
        except Exception as exc:
            logger.error(
                "Rule %s failed before completing for deal %s",
                rule.rule_id,
                signal.deal_id,
                exc_info=True,
            )
            message = str(exc) or exc.__class__.__name__
            return ActionOutcome.failed(message, {"error": message})

    async def _record(
        self, rule: RuleDefinition, signal: Signal, outcome: ActionOutcome
    ) -> ExecutionLogEntry:
        entry = ExecutionLogEntry(
            org_id=signal.org_id,
            rule_id=rule.rule_id,
            meeting_id=signal.meeting_id,
            deal_id=signal.deal_id,
            trigger_type=signal.trigger_type,
            trigger_signal=signal.snapshot(),
            action_type=rule.action_type,
            action_result=outcome.action_result,
            status=outcome.status,
            error_message=outcome.error_message,
            created_at=self._clock(),
        )
        await self._append_with_retry(entry)

        if outcome.status == ExecutionStatus.failed:
            logger.warning(
                "Rule %s (%s) failed for deal %s: %s",
                rule.rule_id,
                rule.action_type.value,
                signal.deal_id,
                outcome.error_message,
            )
        else:
            logger.info(
                "Rule %s (%s) %s for deal %s",
                rule.rule_id,
                rule.action_type.value,
                outcome.status.value,
                signal.deal_id,
            )
        return entry

    async def _append_with_retry(self, entry: ExecutionLogEntry) -> None:
        """Write *entry*, retrying a bounded number of times.

        Called with the candidate's lock still held, so a retried write
        lands before any competing check can read the log.
        """
        for attempt in range(1, self._log_append_attempts + 1):
            try:
                await self._store.append_log_entry(entry)
                return
            except Exception:
                logger.warning(
                    "Log write attempt %d/%d failed for rule %s on deal %s",
                    attempt,
                    self._log_append_attempts,
                    entry.rule_id,
                    entry.deal_id,
                    exc_info=True,
                )
                if attempt < self._log_append_attempts:
                    await asyncio.sleep(self._log_append_backoff * attempt)

        raise LogWriteError(
            f"could not write {entry.status.value} log entry for rule "
            f"{entry.rule_id} on deal {entry.deal_id} after "
            f"{self._log_append_attempts} attempt(s)"
        )
