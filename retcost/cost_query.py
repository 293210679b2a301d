"""
Cost Management query client.

Queries the actual cost of a single resource for one billing period. The
Cost Management API throttles aggressively and reports several independent
retry-after hints; the client waits for the longest of them and retries the
same request until it gets an answer (or a configured ceiling is reached).
"""
import logging
import math
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Mapping, Optional

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, stop_never
from tenacity.stop import stop_base

from .constants import (
    COST_QUERY_API_VERSION,
    COST_QUERY_CLIENT_TYPE,
    COST_QUERY_TIMEOUT,
    COST_QUERY_URL,
    DEFAULT_RETRY_AFTER_SECONDS,
    HTTP_OK,
    HTTP_TOO_MANY_REQUESTS,
    RETRY_AFTER_HEADERS,
    STATUS_FAILED,
    STATUS_NO_DATA,
    STATUS_OK,
)
from .errors import RateLimited, UpstreamQueryFailed
from .models import BillingPeriod, CostResult, ResourceRecord

logger = logging.getLogger(__name__)


@dataclass
class QueryConfig:
    """Tunables for the cost query client. ``None`` ceilings mean unbounded."""
    api_version: str = COST_QUERY_API_VERSION
    client_type: str = COST_QUERY_CLIENT_TYPE
    timeout: float = COST_QUERY_TIMEOUT
    default_retry_after: float = DEFAULT_RETRY_AFTER_SECONDS
    max_attempts: Optional[int] = None
    max_total_wait: Optional[float] = None


# =============================================================================
# Request / Response Helpers
# =============================================================================

def build_query_body(resource_id: str, period: BillingPeriod) -> Dict[str, Any]:
    """Request body for the actual cost of one resource over one month."""
    return {
        'type': 'ActualCost',
        'timeframe': 'Custom',
        'timePeriod': {
            'from': period.start.isoformat(),
            'to': period.end.isoformat(),
        },
        'dataset': {
            'granularity': 'Monthly',
            'aggregation': {
                'totalCost': {'name': 'Cost', 'function': 'Sum'},
            },
            'sorting': [
                {'direction': 'ascending', 'name': 'UsageDate'},
            ],
            'filter': {
                'dimensions': {
                    'name': 'ResourceId',
                    'operator': 'In',
                    'values': [resource_id],
                },
            },
        },
    }


def _header_seconds(headers: Mapping[str, str], name: str) -> float:
    value = headers.get(name)
    if value is None or value == '':
        return 0
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring non-numeric {name}: {value!r}")
        return 0
    # nan would poison max() and inf cannot be slept on
    if not math.isfinite(seconds):
        logger.debug(f"Ignoring non-finite {name}: {value!r}")
        return 0
    return max(seconds, 0)


def compute_retry_after(
    headers: Mapping[str, str],
    default: float = DEFAULT_RETRY_AFTER_SECONDS,
) -> float:
    """
    Seconds to wait after a throttled response.

    Takes the maximum over all quota-specific retry-after headers; falls back
    to ``default`` when none is present or all are zero.
    """
    longest = max(_header_seconds(headers, name) for name in RETRY_AFTER_HEADERS.values())
    return longest if longest > 0 else default


def parse_query_response(payload: Dict[str, Any]) -> CostResult:
    """
    Extract cost and currency from a query response.

    The cost is the first value of the first row. The currency comes from
    the ``Currency`` column when columns are described, otherwise from the
    first string cell after the cost.
    """
    properties = payload.get('properties') or {}
    rows: List[List[Any]] = properties.get('rows') or []
    if not rows:
        return CostResult(cost=Decimal(0), status=STATUS_NO_DATA)

    row = rows[0]
    try:
        cost = Decimal(str(row[0]))
    except (IndexError, InvalidOperation):
        raise UpstreamQueryFailed(HTTP_OK, f"Unexpected row format: {row!r}") from None

    currency = None
    columns = [c.get('name', '') for c in properties.get('columns') or [] if isinstance(c, dict)]
    if 'Currency' in columns and columns.index('Currency') < len(row):
        currency = row[columns.index('Currency')]
    else:
        currency = next((cell for cell in row[1:] if isinstance(cell, str)), None)

    return CostResult(cost=cost, currency=currency or None, status=STATUS_OK)


# =============================================================================
# Retry Policy
# =============================================================================

class stop_after_total_wait(stop_base):
    """Stop before the accumulated sleep time would exceed ``max_wait`` seconds."""

    def __init__(self, max_wait: float):
        self.max_wait = max_wait

    def __call__(self, retry_state) -> bool:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        upcoming = getattr(exc, 'retry_after', 0) or 0
        return retry_state.idle_for + upcoming > self.max_wait


def _wait_for_retry_after(retry_state) -> float:
    exc = retry_state.outcome.exception()
    return float(exc.retry_after)


def _log_rate_limited(retry_state) -> None:
    exc = retry_state.outcome.exception()
    logger.warning(
        f"Rate limited, waiting {exc.retry_after:g}s before retry "
        f"(attempt {retry_state.attempt_number})"
    )


class CostQueryClient:
    """
    Sequential client for the Cost Management query API.

    Usage:
        client = CostQueryClient()
        result = client.query_cost(record, BillingPeriod('202401'), token)
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        config: Optional[QueryConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session = session or requests.Session()
        self.config = config or QueryConfig()
        self._sleep = sleep

    def _stop_policy(self):
        stop = stop_never
        if self.config.max_attempts:
            stop = stop_after_attempt(self.config.max_attempts)
        if self.config.max_total_wait is not None:
            total = stop_after_total_wait(self.config.max_total_wait)
            stop = total if stop is stop_never else stop | total
        return stop

    def build_url(self, record: ResourceRecord) -> str:
        parts = record.id_parts
        return COST_QUERY_URL.format(
            subscription_id=parts.subscription_id,
            resource_group=parts.resource_group,
        )

    def _headers(self, token: str) -> Dict[str, str]:
        return {
            'Authorization': f'Bearer {token}',
            'Content-Type': 'application/json',
            'ClientType': self.config.client_type,
        }

    def _post_once(self, url: str, body: Dict[str, Any], token: str) -> CostResult:
        """Send one attempt; raise RateLimited or UpstreamQueryFailed on non-200."""
        try:
            response = self.session.post(
                url,
                params={'api-version': self.config.api_version},
                json=body,
                headers=self._headers(token),
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamQueryFailed(None, str(e)) from e

        if response.status_code == HTTP_TOO_MANY_REQUESTS:
            retry_after = compute_retry_after(response.headers, self.config.default_retry_after)
            raise RateLimited(retry_after, response.status_code)

        if response.status_code != HTTP_OK:
            raise UpstreamQueryFailed(response.status_code, response.text[:500])

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamQueryFailed(response.status_code, f"Invalid JSON: {e}") from e

        result = parse_query_response(payload)
        result.status_code = response.status_code
        return result

    def query_cost(self, record: ResourceRecord, period: BillingPeriod, token: str) -> CostResult:
        """
        Return the cost of ``record`` for ``period``.

        Never raises for API problems: a failed query yields a zero-cost
        result with status ``failed`` so the run can move on.
        """
        url = self.build_url(record)
        body = build_query_body(record.resource_id, period)
        logger.debug(f"Querying cost for {record.resource_id} ({period})")

        retrying = Retrying(
            retry=retry_if_exception_type(RateLimited),
            wait=_wait_for_retry_after,
            stop=self._stop_policy(),
            sleep=self._sleep,
            before_sleep=_log_rate_limited,
            reraise=True,
        )

        try:
            result = retrying(self._post_once, url, body, token)
        except RateLimited as e:
            attempts = retrying.statistics.get('attempt_number', 1)
            logger.error(f"Giving up on {record.name} after {attempts} throttled attempt(s)")
            return CostResult(
                status=STATUS_FAILED,
                attempts=attempts,
                status_code=e.status_code,
                message=str(e),
            )
        except UpstreamQueryFailed as e:
            logger.error(f"Failed to query cost for {record.name}: {e}")
            return CostResult(
                status=STATUS_FAILED,
                attempts=retrying.statistics.get('attempt_number', 1),
                status_code=e.status_code,
                message=e.message,
            )

        result.attempts = retrying.statistics.get('attempt_number', 1)
        return result
