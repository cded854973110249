"""
ascent.errors — Exception hierarchy
====================================

Duplicates, CAS losses and notification failures are *not* errors and
never surface as exceptions; see the services for how each is logged.
"""

from __future__ import annotations


class AscentError(Exception):
    """Base class for all Ascent errors."""


class MalformedEventError(AscentError, ValueError):
    """An inbound event is missing a required field or carries an invalid value.

    Raised at the normalizer boundary before any state is touched.
    """

    def __init__(self, kind: str, problems: list[str]) -> None:
        self.kind = kind
        self.problems = problems
        super().__init__(f"Malformed {kind} event: {', '.join(problems)}")


class MetricsStoreUnavailable(AscentError):
    """The metrics store could not apply an update.

    The triggering event was not counted; the transport is expected to
    redeliver it.
    """


class UnknownProjectError(AscentError, LookupError):
    """No project (or no linked community) matches the given identifier."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"Unknown project: {identifier}")
