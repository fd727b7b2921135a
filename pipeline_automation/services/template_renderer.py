import re
from typing import Any, Dict, Mapping, TypeVar

from pydantic import BaseModel

from pipeline_automation.schemas.signal import Signal

# Placeholders are ``{{identifier}}`` with no inner whitespace
_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")

# Config fields carrying templates end with this suffix
_TEMPLATE_FIELD_SUFFIX = "_template"

ConfigT = TypeVar("ConfigT", bound=BaseModel)


def render_template(template: str, context: Mapping[str, Any]) -> str:
    """Substitute ``{{name}}`` placeholders from *context*.

    Unknown names and ``None`` values render as the empty string, so a
    single bad placeholder never blocks a rule.  Neither argument is
    mutated.
    """

    def _substitute(match: "re.Match[str]") -> str:
        value = context.get(match.group(1))
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(_substitute, template)


def build_template_context(signal: Signal) -> Dict[str, Any]:
    """Return the variables available to action templates for *signal*.

    The signal's free-form ``context`` plus the computed ``trigger_type``,
    ``deal_name`` and ``meeting_title`` (the latter two default to
    ``""`` when the producer did not supply them).
    """
    context: Dict[str, Any] = dict(signal.context)
    context["trigger_type"] = signal.trigger_type.value
    context["deal_name"] = signal.context.get("deal_name") or ""
    context["meeting_title"] = signal.context.get("meeting_title") or ""
    return context


def render_action_config(config: ConfigT, context: Mapping[str, Any]) -> ConfigT:
    """Return a copy of *config* with every ``*_template`` field rendered."""
    updates = {
        name: render_template(getattr(config, name), context)
        for name in type(config).model_fields
        if name.endswith(_TEMPLATE_FIELD_SUFFIX)
    }
    return config.model_copy(update=updates)
