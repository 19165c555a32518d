# jtree_errors.py
# Exception hierarchy for the jtree parser.
#
# Input rejection derives from SyntaxError, so callers that already guard a
# JSON parse with `except SyntaxError` keep working. Programming-error class
# failures derive from AssertionError and are never raised for untrusted
# input alone.

from typing import Optional


# ---------------------------------------------------------------------------
# INPUT REJECTION
# ---------------------------------------------------------------------------
class JSONTreeError(SyntaxError):
    """
    Input was rejected. Terminal for the current parse; nothing is retried
    and no partial document is returned.

    `position` is the buffer offset the builder was looking at.
    """
    category = "error"

    def __init__(self, message: str, position: Optional[int] = None):
        super().__init__(message)
        self.position = position


class MalformedStructureError(JSONTreeError):
    """Unbalanced braces or brackets, unterminated string, stray token."""
    category = "malformed-structure"


class UnsupportedConstructError(JSONTreeError):
    """Valid JSON the dialect refuses: nested arrays, objects in arrays, decimals."""
    category = "unsupported-construct"


class ResourceLimitError(JSONTreeError):
    """Nesting depth or digit-run length exceeded."""
    category = "resource-limit"


# ---------------------------------------------------------------------------
# PROGRAMMING ERRORS
# ---------------------------------------------------------------------------
class InvariantViolation(AssertionError):
    """A structural invariant of the tree or the parser state was broken."""


class ReleasedError(InvariantViolation):
    """A released document, node or value was used."""


class ValueKindError(TypeError):
    """A typed accessor was called on a value of a different kind."""
