"""Keyword / regex rule matching against a single inbound message."""
import logging
import re

from ..models import ActionRule, TriggerType

logger = logging.getLogger(__name__)


def _rule_matches(message: str, folded: str, rule: ActionRule) -> bool:
    trigger_type = TriggerType(rule.trigger_type)
    value = rule.trigger_value or ""
    if trigger_type is TriggerType.KEYWORD:
        return bool(value) and value.casefold() in folded
    if trigger_type is TriggerType.REGEX:
        try:
            return re.search(value, message, re.IGNORECASE) is not None
        except re.error as e:
            logger.warning("Skipping rule %s: invalid pattern %r (%s)", rule.id, value, e)
            return False
    # Analysis rules fire from the analysis pass, not from raw text
    return False


def match_rules(message: str, rules: list[ActionRule]) -> list[ActionRule]:
    """Rules that fire on the raw message, in the order given (priority order)."""
    folded = (message or "").casefold()
    return [rule for rule in rules if _rule_matches(message or "", folded, rule)]
