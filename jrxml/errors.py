"""Exception hierarchy for report parsing and patching.

Every error raised on purpose by this package derives from
:class:`ReportError`, which is itself a :class:`ValueError` so callers that
only care about "bad input" can catch the builtin.
"""

from __future__ import annotations


class ReportError(ValueError):
    """Base class for report-definition errors."""


class StructureError(ReportError):
    """The text is not XML, or no report root could be found in it."""


class PatchError(ReportError):
    """An edit could not be applied to the document text."""


class PatchNotFoundError(PatchError):
    """No element matched the edit's natural key."""

    def __init__(self, key) -> None:
        self.key = key
        super().__init__(
            f"No {key.type} element found at ({key.x}, {key.y})"
        )


class NoChangeError(PatchError):
    """Applying the edit produced text identical to the input."""

    def __init__(self, key) -> None:
        self.key = key
        super().__init__(
            f"Edit of {key.type} at ({key.x}, {key.y}) changed nothing"
        )
