"""
Exception hierarchy for the relevancy ranker.

Oracle failures are raised by the oracle client and caught by the stages,
which turn them into result dictionaries. Configuration failures
(bad rank column, unknown category) propagate to the caller.
"""


class RelevancyError(Exception):
    """Base class for all ranker errors."""


class OracleError(RelevancyError):
    """The ranking oracle could not produce a usable answer."""


class OracleUnavailable(OracleError):
    """No oracle credential is configured."""


class OracleTransportError(OracleError):
    """Network, timeout or API failure while calling the oracle."""


class OracleRateLimited(OracleTransportError):
    """Rate limit or 5xx response still failing after the bounded retries."""


class OracleMalformedResponse(OracleError):
    """The oracle answered, but the payload is not valid JSON of the expected shape."""

    def __init__(self, message: str, raw: str = ''):
        super().__init__(message)
        self.raw = raw


class InvalidRankColumn(RelevancyError, ValueError):
    """A rank column identifier does not match ^[a-z0-9_]+$."""


class UnknownCategory(RelevancyError, KeyError):
    """Lookup of a category name that is not registered."""

    def __str__(self):
        return f"Unknown category: {self.args[0]!r}" if self.args else "Unknown category"
