"""
Error taxonomy
==============
Specimen errors (codec, provenance, validation) are per-specimen failures: a
batch driver may record them and carry on with the other specimens.

Layout errors are programming errors in whoever builds a diagram. They are
never retried and never caught by the batch helpers.
"""

from __future__ import annotations
from typing import List, Optional, Sequence


class SpecimenGuideError(Exception):
    """Base class for every error raised by this package."""


# ── Specimen identity / provenance ───────────────────────────────────────────

class SpecimenError(SpecimenGuideError):
    """Failure tied to one specimen; recoverable at batch level."""

    def __init__(self, message: str, identity=None):
        super().__init__(message)
        self.identity = identity


class MalformedIdentity(SpecimenError):
    pass


class DuplicateAlias(SpecimenError):
    pass


class BrokenChain(SpecimenError):
    def __init__(self, message: str, identity=None, missing=None):
        super().__init__(message, identity)
        self.missing = missing


class ProvenanceCycle(BrokenChain):
    """Creating the alias would make a parent chain loop back on itself."""


class ValidationExceeded(SpecimenError):
    """The operator could not confirm the object in hand within the budget."""

    def __init__(self, message: str, expected: Sequence[str], attempts: Optional[List] = None):
        super().__init__(message)
        self.expected = list(expected)
        self.attempts = list(attempts or [])

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)


# ── Diagram layout ───────────────────────────────────────────────────────────

class LayoutError(SpecimenGuideError):
    pass


class CyclicReference(LayoutError):
    pass


class NodeAlreadyPlaced(LayoutError):
    pass
