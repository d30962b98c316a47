"""
Exception taxonomy for the telemetry pipeline.

Every failure the pipeline can meet is classified into one of these types so
that loops can decide whether to drop, retry, or degrade. None of them is
allowed to escape a running session; they end up as a log line or a health
flag.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-002)

TODO:
- None
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class ParseError(PipelineError):
    """Inbound message is not valid structured telemetry."""


class WriteError(PipelineError):
    """Persisting a reading failed."""


class TerminalWriteError(WriteError):
    """Write failed in a way retrying cannot fix.

    Raised when the referenced device does not exist in the store
    (foreign-key violation).
    """


class TransientWriteError(WriteError):
    """Write failed but may succeed on a later attempt."""


class QueryError(PipelineError):
    """Reading history or configuration from the store failed."""


class TransportError(PipelineError):
    """Connection to the message broker was lost or refused."""


class ExternalServiceUnavailable(PipelineError):
    """An external HTTP collaborator (weather API) could not be reached."""
