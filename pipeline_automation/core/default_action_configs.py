"""Defaults applied when an operator creates a rule without them.

Kept free of schema imports so both the schema layer and the API layer
can use it without import cycles.
"""

DEFAULT_MIN_CONFIDENCE: float = 0.7
DEFAULT_COOLDOWN_HOURS: int = 24

# Keyed by action_type; matches what the rule editor pre-fills
DEFAULT_ACTION_CONFIGS = {
    "advance_stage": {"advance_to_next": True},
    "create_task": {
        "title_template": "Follow up on {{deal_name}}",
        "due_days": 3,
        "priority": "medium",
    },
    "send_notification": {
        "channels": ["in_app"],
        "message_template": "{{trigger_type}} detected for {{deal_name}}",
    },
    "update_deal_field": {
        "field": "next_step",
        "value_template": "{{trigger_type}}",
    },
}
