"""
Data models for the retirement cost collector.
"""
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from .constants import (
    RESOURCE_ID_MIN_SEGMENTS,
    RESOURCE_ID_NAME_INDEX,
    RESOURCE_ID_RESOURCE_GROUP_INDEX,
    RESOURCE_ID_SUBSCRIPTION_INDEX,
    STATUS_OK,
)
from .errors import InvalidBillingPeriod, InvalidResourceId

_PERIOD_PATTERN = re.compile(r'^\d{6}$')


@dataclass(frozen=True)
class ResourceIdParts:
    """Components of an Azure resource id."""
    subscription_id: str
    resource_group: str
    name: str


def parse_resource_id(resource_id: str) -> ResourceIdParts:
    """
    Split an Azure resource id into subscription, resource group and name.

    Names of child resources span several segments
    (e.g. ``servers/db1/databases/app``); everything from the name index
    onwards is joined back with ``/``.

    Raises:
        InvalidResourceId: If the id has fewer segments than a resource id needs
    """
    parts = resource_id.split('/')
    if len(parts) < RESOURCE_ID_MIN_SEGMENTS:
        raise InvalidResourceId(resource_id)
    return ResourceIdParts(
        subscription_id=parts[RESOURCE_ID_SUBSCRIPTION_INDEX],
        resource_group=parts[RESOURCE_ID_RESOURCE_GROUP_INDEX],
        name='/'.join(parts[RESOURCE_ID_NAME_INDEX:]),
    )


@dataclass(frozen=True)
class BillingPeriod:
    """A calendar month, identified as YYYYMM, with UTC boundaries."""
    period: str

    def __post_init__(self):
        if not isinstance(self.period, str) or not _PERIOD_PATTERN.match(self.period):
            raise InvalidBillingPeriod(str(self.period))
        if not 1 <= int(self.period[4:]) <= 12:
            raise InvalidBillingPeriod(self.period)
        # end rolls into the next year, which must still be a valid datetime
        if not 1 <= int(self.period[:4]) <= 9998:
            raise InvalidBillingPeriod(self.period)

    @property
    def year(self) -> int:
        return int(self.period[:4])

    @property
    def month(self) -> int:
        return int(self.period[4:])

    @property
    def start(self) -> datetime:
        """First second of the month (UTC)."""
        return datetime(self.year, self.month, 1, tzinfo=timezone.utc)

    @property
    def end(self) -> datetime:
        """Last second of the month (UTC)."""
        if self.month == 12:
            next_month = datetime(self.year + 1, 1, 1, tzinfo=timezone.utc)
        else:
            next_month = datetime(self.year, self.month + 1, 1, tzinfo=timezone.utc)
        return next_month - timedelta(seconds=1)

    @classmethod
    def last_full_month(cls, now: Optional[datetime] = None) -> 'BillingPeriod':
        """
        Return the last complete month before ``now``.

        Example:
            If today is 2026-02-13, returns BillingPeriod('202601')
        """
        today = now or datetime.now(timezone.utc)
        first_of_this_month = today.replace(day=1)
        last_of_prev_month = first_of_this_month - timedelta(days=1)
        return cls(last_of_prev_month.strftime('%Y%m'))

    def __str__(self) -> str:
        return self.period


@dataclass
class ResourceRecord:
    """
    A billable resource flagged for retirement.

    ``cost`` and ``currency`` are filled by the cost query step and may only
    be assigned once per run.
    """
    resource_id: str
    resource_type: str
    retiring_feature: str
    retirement_date: date
    action: str = ""

    # Set once by assign_cost()
    cost: Decimal = Decimal(0)
    currency: Optional[str] = None

    # Populated for records synthesized from dependent resources
    location: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)
    parent_resource_id: Optional[str] = None

    # Position in the input file
    source_index: int = 0

    _costed: bool = field(default=False, init=False, repr=False, compare=False)

    @property
    def id_parts(self) -> ResourceIdParts:
        return parse_resource_id(self.resource_id)

    @property
    def subscription_id(self) -> str:
        return self.id_parts.subscription_id

    @property
    def resource_group(self) -> str:
        return self.id_parts.resource_group

    @property
    def name(self) -> str:
        return self.id_parts.name

    @property
    def is_costed(self) -> bool:
        return self._costed

    def assign_cost(self, cost: Decimal, currency: Optional[str] = None) -> None:
        """Record the queried cost. Raises ValueError on a second call."""
        if self._costed:
            raise ValueError(f"Cost already assigned for {self.resource_id}")
        self.cost = cost
        if currency:
            self.currency = currency
        self._costed = True


@dataclass(frozen=True)
class DependentResource:
    """A resource bound to a hosting environment, as found by the resource graph."""
    resource_id: str
    resource_type: str
    subscription_id: str = ""
    resource_group: str = ""
    location: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict, hash=False)
    parent_id: str = ""

    @classmethod
    def from_graph_row(cls, row: Dict[str, Any]) -> 'DependentResource':
        """Build from a Resource Graph objectArray row."""
        return cls(
            resource_id=row.get('id', ''),
            resource_type=(row.get('type') or '').lower(),
            subscription_id=row.get('subscriptionId', ''),
            resource_group=row.get('resourceGroup', ''),
            location=row.get('location'),
            tags=dict(row.get('tags') or {}),
            parent_id=row.get('parentId') or '',
        )


@dataclass
class CostResult:
    """Outcome of querying one resource for one billing period."""
    cost: Decimal = Decimal(0)
    currency: Optional[str] = None
    status: str = STATUS_OK
    attempts: int = 1
    status_code: Optional[int] = None
    message: str = ""
