"""Precondition errors raised by the track cleaning and residence functions."""

from __future__ import annotations


class ResidenceError(ValueError):
    """Base class for input problems detected before any computation runs."""


class InvalidRadius(ResidenceError):
    """A radius (revisit or buffer) was zero or negative."""


class InvalidWindow(ResidenceError):
    """A median smoothing window was even or smaller than 1."""


class EmptyTrack(ResidenceError):
    """No fixes were supplied."""


class InsufficientFixes(ResidenceError):
    """The track is shorter than the requested window needs."""
