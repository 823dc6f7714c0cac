"""Exception types raised by the delayed task engine.

Every error derives from DelayedTasksError. Validation errors also derive
from TypeError so callers that catch the built-in keep working.

Optimistic transaction aborts are not errors and have no type here; they
surface as a poll that claimed zero tasks.
"""


class DelayedTasksError(Exception):
    """Base class for all delayed task errors."""


class ConfigurationError(DelayedTasksError, TypeError):
    """Invalid constructor input (queue id, connection spec or callback)."""


class InvalidDelayError(DelayedTasksError, TypeError):
    """`delay_ms` is not a strictly positive, finite number."""


class InvalidDataError(DelayedTasksError, TypeError):
    """No payload was provided to add()."""


class CodecError(DelayedTasksError, ValueError):
    """A task record could not be encoded or decoded."""


class StoreError(DelayedTasksError):
    """Transport or protocol failure from the backing store.

    The original exception is chained as ``__cause__``.
    """
