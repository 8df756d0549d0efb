"""Exception hierarchy shared by the builder, converters and the extraction workflow.

Every error carries a human-readable ``message``, a short ``title`` suitable for
a dialog or log header, and a :class:`Severity`. Catch :class:`MlnError` to
handle all of them at once.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class MlnWarning(UserWarning):
    """Non-fatal condition, the operation goes on (e.g. automatic normalization)."""


class MlnError(Exception):
    """Base class of multilayer network errors.

    Parameters
    --
    message : str
        What went wrong.
    title : str, optional
        Short heading. Defaults to the class ``default_title``.
    severity : Severity, optional
        ``Severity.ERROR`` unless the subclass says otherwise.
    details : dict, optional
        Structured information for programmatic handling.
    cause : Exception, optional
        Underlying exception; also set as ``__cause__``.

    """

    default_title = "Multi-layer network error"
    default_severity = Severity.ERROR

    def __init__(
        self,
        message: str,
        title: Optional[str] = None,
        severity: Optional[Severity] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.title = title if title is not None else self.default_title
        self.severity = Severity(severity) if severity is not None else self.default_severity
        self.details = dict(details or {})
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return self.message

    def add_context(self, **kwargs: Any) -> "MlnError":
        """Merge ``kwargs`` into ``details`` and return ``self`` for chaining."""
        self.details.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": type(self).__name__,
            "title": self.title,
            "message": self.message,
            "severity": self.severity.value,
            "details": dict(self.details),
            "cause": repr(self.cause) if self.cause is not None else None,
        }


class BuilderError(MlnError):
    """Malformed construction call on a :class:`MultilayerNetworkModel`."""

    default_title = "Multi-layer network builder error"


class FormatError(MlnError):
    """A layered collection, a flattened graph or a model breaks the format.

    ``problems`` lists every violation found when the check reports in batch.
    """

    default_title = "Wrong multi-layer network format"

    def __init__(self, message: str, title: Optional[str] = None, problems=None, **kwargs) -> None:
        super().__init__(message, title, **kwargs)
        self.problems = list(problems) if problems else [message]


class ConverterError(MlnError):
    default_title = "Conversion error"


class WriterError(MlnError):
    default_title = "Multi-layer network writer error"


class AppCallError(MlnError):
    """The extraction service is unreachable, failed or gave nothing usable."""

    default_title = "Extraction service error"


class ExtractionError(MlnError):
    default_title = "Extraction failure"


class ExtractionCancelled(ExtractionError):
    """Raised at a checkpoint after cancellation was requested. Not a bug."""

    default_title = "Extraction cancelled"
    default_severity = Severity.INFO

    def __init__(self, message: str = "The extraction was cancelled.", **kwargs) -> None:
        super().__init__(message, **kwargs)
