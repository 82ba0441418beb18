from __future__ import annotations


class ViewRayError(ValueError):
    """Base class for input errors raised by viewray operations."""


class InvalidArgument(ViewRayError):
    """A precondition on an argument was violated (empty list, non-positive count, ...)."""


class DegenerateInput(ViewRayError):
    """A vector that must define a direction has near-zero magnitude."""
