# memokit/core/errors.py
from __future__ import annotations


class MemokitError(Exception):
    pass


class InvalidArgument(MemokitError, TypeError):
    """Raised by memoize() when it is configured with bad arguments."""
    pass
