"""
Protocol generation errors.

Stage failures (missing dependency, composition, persist) end a job as
failed. Source read failures are per-item and only ever logged.
"""


class ProtocolError(Exception):
    """Base class for protocol generation errors."""


class MissingDependency(ProtocolError):
    """Project or organization absent when generation starts."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class SourceReadFailure(ProtocolError):
    """A photo or blueprint could not be read or decoded."""


class CompositionFailure(ProtocolError):
    """Unrecoverable layout or drawing error."""


class PersistFailure(ProtocolError):
    """Final write of the protocol document failed."""


class QueueFull(ProtocolError):
    """Worker pool has no free slot for another job."""


class InvalidJobTransition(ProtocolError):
    """Attempt to move a job out of a terminal state."""


class JobNotFound(ProtocolError):
    """No protocol job with the given id."""
