"""
Exceptions raised by the retirement cost collector.

Fatal errors (subclasses of FatalInputError) abort the whole run before or
between API calls. RateLimited and UpstreamQueryFailed are recovered from
inside the cost query client and never end a run.
"""
from datetime import date
from typing import Optional


class RetirementCostError(Exception):
    """Base class for all collector errors."""


class FatalInputError(RetirementCostError):
    """An input problem that aborts the run with a non-zero exit code."""


class InvalidBillingPeriod(FatalInputError):
    def __init__(self, period: str):
        self.period = period
        super().__init__(f"Invalid billing period '{period}': expected YYYYMM")


class InvalidEndDate(FatalInputError):
    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid end date '{value}': expected YYYY-MM-DD")


class InputFileMissing(FatalInputError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Input file not found: {path}")


class InputFileEmpty(FatalInputError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Input file has no resource rows: {path}")


class InvalidInputFile(FatalInputError):
    """Header row is missing one or more required columns."""


class InvalidRetirementDate(FatalInputError):
    def __init__(self, value: str, line: Optional[int] = None):
        self.value = value
        self.line = line
        where = f" on row {line}" if line is not None else ""
        super().__init__(f"Invalid retirement date '{value}'{where}")


class InvalidResourceId(FatalInputError):
    def __init__(self, resource_id: str):
        self.resource_id = resource_id
        super().__init__(f"Invalid resource id '{resource_id}'")


class NoMatchingResources(FatalInputError):
    """Nothing left to query after date filtering."""

    def __init__(self, end_date: Optional[date] = None):
        self.end_date = end_date
        if end_date is None:
            message = "No resources with a future retirement date were found"
        else:
            message = f"No resources retiring before {end_date.isoformat()} were found"
        super().__init__(message)


class InvalidConfigValue(FatalInputError):
    def __init__(self, key: str, value: str):
        self.key = key
        self.value = value
        super().__init__(f"Invalid value '{value}' for config key '{key}'")


class AuthError(RetirementCostError):
    """Credential acquisition failed; stops the run.

    Wraps the provider exception so callers can report it without
    depending on azure-identity types.
    """
    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(message)


class RateLimited(RetirementCostError):
    """The cost API throttled the request; retry after ``retry_after`` seconds."""

    def __init__(self, retry_after: float, status_code: int = 429):
        self.retry_after = retry_after
        self.status_code = status_code
        super().__init__(f"Rate limited (HTTP {status_code}), retry after {retry_after}s")


class UpstreamQueryFailed(RetirementCostError):
    """Non-success, non-throttling response (or transport failure)."""

    def __init__(self, status_code: Optional[int], message: str = ""):
        self.status_code = status_code
        self.message = message
        status = f"HTTP {status_code}" if status_code is not None else "transport error"
        super().__init__(f"Cost query failed ({status}): {message}" if message else f"Cost query failed ({status})")
