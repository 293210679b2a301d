"""
Run pipeline: expansion, sequential cost queries and aggregation.

All per-run state lives in a RunContext; nothing is kept at module level.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .aggregator import CostAggregator
from .auth import CredentialProvider
from .cost_query import CostQueryClient
from .expander import ResourceGraph, expand_dependents
from .models import BillingPeriod, ResourceRecord
from .report import Reporter

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Everything one run needs and produces."""
    period: BillingPeriod
    credentials: CredentialProvider
    client: CostQueryClient
    graph: Optional[ResourceGraph] = None
    reporter: Optional[Reporter] = None
    aggregator: CostAggregator = field(default_factory=CostAggregator)
    records: List[ResourceRecord] = field(default_factory=list)


def run_pipeline(context: RunContext, records: List[ResourceRecord]) -> CostAggregator:
    """
    Cost every record in ``records`` (already filtered and sorted).

    Dependent resources are appended once, before the first query, and are
    queried in append order at the tail. Resources are queried one at a time.
    """
    context.records = expand_dependents(records, context.graph)

    token = context.credentials.get_token()

    total = len(context.records)
    logger.info(f"Querying costs for {total} resource(s), period {context.period}")
    if context.reporter:
        context.reporter.start(context.period, total)

    for index, record in enumerate(context.records, 1):
        result = context.client.query_cost(record, context.period, token)
        record.assign_cost(result.cost, result.currency)
        context.aggregator.add(record, result)
        if context.reporter:
            context.reporter.resource(index, record, result)

    if context.reporter:
        context.reporter.summary(context.aggregator, context.period)

    return context.aggregator
