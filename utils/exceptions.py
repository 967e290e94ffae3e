"""
Error taxonomy for the trader.

Transport failures, oracle reply problems and order-flow conditions each get
their own type so the scheduler can decide between dropping a pair, ending a
trade attempt or backing off the whole scan.
"""

from __future__ import annotations


class TraderError(Exception):
    """Base class for every error raised by this package."""


class TransportError(TraderError):
    """Network/HTTP failure talking to a collaborator (Upbit, LLM, Notion)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ResponseFormatError(TraderError):
    """The oracle reply contains no extractable JSON object."""

    def __init__(self, message: str, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


class DecisionParseError(TraderError):
    """A JSON payload was found but required fields are missing or invalid."""

    def __init__(self, message: str, payload: dict | None = None) -> None:
        super().__init__(message)
        self.payload = payload or {}


class OrderTimeout(TraderError):
    """Limit buy not filled inside the window. Handled as a policy branch."""


class OrderNotFilledError(TraderError):
    """An order that should have executed reports no executed volume."""


class PositionAlreadyOpenError(TraderError):
    """A new trade was requested while another one is still open."""


class InsufficientCandidates(TraderError):
    """The market scan produced nothing to trade. Deferred, never escalated."""


class StoreInitError(TraderError):
    """The persistent store could not be opened. Fatal at startup."""
