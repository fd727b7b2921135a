from typing import Any, Dict, Iterable, Optional


class AutomationError(Exception):
    """Base class for all pipeline-automation domain exceptions.

    Every custom exception in this module inherits from here so that a
    single ``except AutomationError`` clause can catch any domain
    error.
    """

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(detail)


class RuleNotFoundError(AutomationError):
    """Raised when a requested automation rule does not exist."""

    def __init__(self, detail: str = "Automation rule not found"):
        super().__init__(detail)


class InvalidActionConfigError(AutomationError):
    """Raised when ``action_config`` does not match its ``action_type``.

    At dispatch time this never escapes the engine: the candidate is
    logged as ``failed`` with ``"invalid action config"`` and no
    executor runs.  At authoring time it surfaces as HTTP 422.
    """

    def __init__(self, detail: str = "invalid action config"):
        super().__init__(detail)


class ExecutorError(AutomationError):
    """Raised when a capability call made by an action executor fails.

    ``action_result`` optionally carries the structured output gathered
    before the failure; it is written to the log entry as-is.
    """

    def __init__(
        self,
        detail: str = "Action executor failed",
        action_result: Optional[Dict[str, Any]] = None,
    ):
        self.action_result = action_result
        super().__init__(detail)


class ActionTimeoutError(ExecutorError):
    """Raised when a capability call exceeds its bounded timeout."""

    def __init__(self, operation: str, timeout: float):
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"{operation} timed out after {timeout:g}s")


class DealNotFoundError(ExecutorError):
    """Raised by a capability when the target deal does not exist."""

    def __init__(self, detail: str = "Deal not found"):
        super().__init__(detail)


class PartialChannelFailureError(ExecutorError):
    """Raised when some notification channels failed.

    Channels that succeeded are **not** rolled back; the fan-out is
    best-effort.  ``failed_channels`` keeps the offending channel names
    in fan-out order.
    """

    def __init__(
        self,
        failed_channels: Iterable[str],
        action_result: Optional[Dict[str, Any]] = None,
    ):
        self.failed_channels = list(failed_channels)
        super().__init__(
            "notification failed for channels: " + ", ".join(self.failed_channels),
            action_result=action_result,
        )


class CooldownLockUnavailableError(AutomationError):
    """Raised when the per-(rule, deal) lock cannot be acquired in time."""

    def __init__(self, detail: str = "cooldown lock unavailable"):
        super().__init__(detail)


class LogWriteError(AutomationError):
    """Raised when an execution log entry could not be made durable.

    The action it describes may already have run.  The entry is what the
    cooldown is read from, so the engine surfaces this to its caller
    instead of reporting a normal result.
    """

    def __init__(self, detail: str = "execution log entry could not be written"):
        super().__init__(detail)
