"""
Online aggregation of per-resource cost results.
"""
from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from .constants import STATUS_FAILED
from .models import BillingPeriod, CostResult, ResourceRecord

BucketKey = Tuple[str, str]


@dataclass
class CostAggregator:
    """
    Running totals for one run.

    Totals are updated as each result arrives; nothing is recomputed at
    report time. Export rows are only kept when ``export`` is set.
    """
    export: bool = False
    grand_total: Decimal = Decimal(0)
    currency: Optional[str] = None
    buckets: Dict[BucketKey, Decimal] = field(default_factory=dict)
    export_rows: List[Dict[str, Any]] = field(default_factory=list)
    status_counts: Counter = field(default_factory=Counter)
    failed_resources: List[str] = field(default_factory=list)
    resource_count: int = 0

    def add(self, record: ResourceRecord, result: CostResult) -> None:
        """Fold one resource's result into the totals."""
        self.resource_count += 1
        self.status_counts[result.status] += 1
        if result.status == STATUS_FAILED:
            self.failed_resources.append(record.resource_id)

        self.grand_total += result.cost
        key = (record.resource_type, record.retiring_feature)
        self.buckets[key] = self.buckets.get(key, Decimal(0)) + result.cost

        if result.currency:
            self.currency = result.currency

        if self.export:
            self.export_rows.append(self._export_row(record, result))

    @staticmethod
    def _export_row(record: ResourceRecord, result: CostResult) -> Dict[str, Any]:
        return {
            'ResourceName': record.name,
            'ResourceType': record.resource_type,
            'SubscriptionId': record.subscription_id,
            'ResourceGroup': record.resource_group,
            'RetirementDate': record.retirement_date.isoformat(),
            'RetiringFeature': record.retiring_feature,
            'Cost': str(result.cost),
            'Currency': result.currency or record.currency or '',
        }

    def bucket_rows(self) -> List[Dict[str, Any]]:
        """Subtotals in first-seen order."""
        return [
            {'resource_type': rtype, 'retiring_feature': feature, 'cost': total}
            for (rtype, feature), total in self.buckets.items()
        ]

    def to_summary(self, period: BillingPeriod) -> Dict[str, Any]:
        """JSON-serializable summary; amounts are rendered as strings."""
        return {
            'period': {
                'id': period.period,
                'start': period.start.isoformat(),
                'end': period.end.isoformat(),
            },
            'resource_count': self.resource_count,
            'total_cost': str(self.grand_total),
            'currency': self.currency or '',
            'status_counts': dict(self.status_counts),
            'failed_resources': list(self.failed_resources),
            'groups': [
                {**row, 'cost': str(row['cost'])}
                for row in self.bucket_rows()
            ],
        }
