import logging
from typing import Iterable, List

from pipeline_automation.schemas.rule import RuleDefinition
from pipeline_automation.schemas.signal import Signal

logger = logging.getLogger(__name__)


class RuleMatcher:
    """Filter an organisation's rules down to the candidates for a signal.

    A rule is a candidate when, in this order:

    1. it is active,
    2. its ``trigger_type`` equals the signal's,
    3. its ``call_type_filter`` is empty or contains the signal's call type,
    4. the signal's confidence is at least ``min_confidence``.

    Candidates are returned oldest rule first (ties broken by id) so
    that log entries for one signal are always written in the same order.
    """

    @staticmethod
    def rule_matches(rule: RuleDefinition, signal: Signal) -> bool:
        if not rule.is_active:
            return False
        if rule.trigger_type != signal.trigger_type:
            return False
        if rule.call_type_filter and signal.call_type_id not in rule.call_type_filter:
            return False
        if signal.confidence < rule.min_confidence:
            return False
        return True

    def match(
        self, signal: Signal, rules: Iterable[RuleDefinition]
    ) -> List[RuleDefinition]:
        ordered = sorted(rules, key=lambda r: (r.created_at, str(r.rule_id)))
        candidates = [rule for rule in ordered if self.rule_matches(rule, signal)]
        logger.debug(
            "Signal %s for deal %s matched %d of %d rule(s)",
            signal.trigger_type.value,
            signal.deal_id,
            len(candidates),
            len(ordered),
        )
        return candidates
