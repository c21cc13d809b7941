"""
Ritual exception hierarchy.

Every error in the system inherits from RitualError.
Each subsystem has its own error class for targeted catching.

Usage:
    try:
        parsed = parse("every funday at 9:00")
    except ScheduleError as e:
        # Caller input is wrong, surface it verbatim
    except RitualError as e:
        # Handle any Ritual error
"""


class RitualError(Exception):
    """Base exception for all Ritual errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


# ━━━ Core Errors ━━━


class ConfigError(RitualError):
    """Configuration is invalid, missing, or malformed."""

    pass


# ━━━ Schedule Errors (caller input, never retried) ━━━


class ScheduleError(RitualError):
    """A schedule phrase or recurrence expression could not be interpreted."""

    pass


class UnrecognizedSchedule(ScheduleError):
    """The phrase matches none of the supported schedule forms."""

    def __init__(self, phrase: str, reason: str = "", details: dict | None = None):
        self.phrase = phrase
        message = f'Unable to parse schedule: "{phrase}"'
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, details)


class InvalidWeekday(ScheduleError):
    """A weekly phrase named a day that does not exist."""

    def __init__(self, day_name: str, details: dict | None = None):
        self.day_name = day_name
        super().__init__(f"Invalid day name: {day_name}", details)


class InvalidRecurrence(ScheduleError):
    """A recurrence expression cannot be interpreted."""

    def __init__(self, recurrence: str, reason: str = "", details: dict | None = None):
        self.recurrence = recurrence
        message = f"Invalid recurrence expression: {recurrence!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, details)


# ━━━ Collaborator Errors ━━━


class BackendUnavailable(RitualError):
    """The recurring-job backend cannot be reached. Transient."""

    def __init__(self, message: str, operation: str = "", details: dict | None = None):
        self.operation = operation
        super().__init__(message, details)


class StorageError(RitualError):
    """Storage backend failure: database errors, corruption, etc."""

    pass


class NotFound(StorageError):
    """A requested record does not exist."""

    def __init__(self, kind: str, record_id: str, details: dict | None = None):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind.capitalize()} not found: {record_id}", details)


class LLMError(RitualError):
    """LLM provider failure: API errors, rate limits, missing keys, etc."""

    def __init__(
        self,
        message: str,
        provider: str = "",
        model: str = "",
        retryable: bool = False,
        details: dict | None = None,
    ):
        self.provider = provider
        self.model = model
        self.retryable = retryable
        super().__init__(message, details)
