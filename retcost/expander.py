"""
Dependent-resource expansion.

Retiring an App Service Environment affects the App Service plans hosted in
it. Those plans are not on the retirement list themselves, so synthetic
records are generated for them to get a cost figure.
"""
import logging
from typing import Iterable, List, Optional, Protocol, Sequence, Set

from .constants import AZURE_APP_SERVICE_PLAN, ENVIRONMENT_RESOURCE_TYPE
from .models import DependentResource, ResourceRecord

logger = logging.getLogger(__name__)


class ResourceGraph(Protocol):
    """Lookup of resources bound to a parent hosting environment."""

    def find_dependents(self, parent_ids: Iterable[str]) -> List[DependentResource]:
        ...


def expand_dependents(
    records: List[ResourceRecord],
    graph: Optional[ResourceGraph],
    environment_type: str = ENVIRONMENT_RESOURCE_TYPE,
) -> List[ResourceRecord]:
    """
    Append synthetic records for resources hosted in environment-type records.

    Retirement metadata for every synthesized record is taken from the first
    environment record in ``records``, not from the environment each
    dependent is bound to. Synthesized records go after the existing (already
    sorted) list and are not re-sorted.

    Returns:
        A new list; ``records`` itself is not modified.
    """
    environments = [r for r in records if r.resource_type == environment_type]
    if not environments:
        return list(records)

    if graph is None:
        logger.warning(
            f"Found {len(environments)} {environment_type} resource(s) but no resource graph "
            "is configured; dependent resources will not be costed"
        )
        return list(records)

    parent_ids = {r.resource_id.lower() for r in environments}
    logger.info(f"Looking up resources hosted in {len(parent_ids)} environment(s)")

    dependents = [
        d for d in graph.find_dependents(sorted(parent_ids))
        if d.parent_id.lower() in parent_ids
    ]
    if not dependents:
        logger.info("No dependent resources found")
        return list(records)

    template = environments[0]
    synthesized = []
    for offset, dependent in enumerate(dependents):
        synthesized.append(ResourceRecord(
            resource_id=dependent.resource_id,
            resource_type=dependent.resource_type,
            retiring_feature=template.retiring_feature,
            retirement_date=template.retirement_date,
            action=template.action,
            location=dependent.location,
            tags=dict(dependent.tags),
            parent_resource_id=dependent.parent_id,
            source_index=len(records) + offset,
        ))

    logger.info(f"Added {len(synthesized)} dependent resource(s)")
    return list(records) + synthesized


# =============================================================================
# Azure Resource Graph
# =============================================================================

def _kusto_string(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def build_dependents_query(parent_ids: Sequence[str], dependent_type: str = AZURE_APP_SERVICE_PLAN) -> str:
    """Resource Graph query for resources whose hosting environment is in ``parent_ids``."""
    id_list = ', '.join(_kusto_string(pid.lower()) for pid in parent_ids)
    return (
        "resources\n"
        f"| where type =~ {_kusto_string(dependent_type)}\n"
        "| extend parentId = tolower(tostring(properties.hostingEnvironmentProfile.id))\n"
        "| where isnotempty(parentId)\n"
        f"| where parentId in ({id_list})\n"
        "| project id, type, subscriptionId, resourceGroup, location, tags, parentId"
    )


class AzureResourceGraph:
    """ResourceGraph backed by azure-mgmt-resourcegraph."""

    def __init__(self, credential, subscriptions: Optional[Sequence[str]] = None, client=None):
        self.subscriptions = list(subscriptions or [])
        if client is None:
            from azure.mgmt.resourcegraph import ResourceGraphClient
            client = ResourceGraphClient(credential)
        self.client = client

    def find_dependents(self, parent_ids: Iterable[str]) -> List[DependentResource]:
        from azure.mgmt.resourcegraph.models import QueryRequest, QueryRequestOptions

        ids = list(parent_ids)
        if not ids:
            return []

        query = build_dependents_query(ids)
        results: List[DependentResource] = []
        skip_token = None
        seen: Set[str] = set()

        while True:
            request = QueryRequest(
                subscriptions=self.subscriptions or None,
                query=query,
                options=QueryRequestOptions(result_format='objectArray', skip_token=skip_token),
            )
            response = self.client.resources(request)

            for row in response.data or []:
                dependent = DependentResource.from_graph_row(row)
                key = dependent.resource_id.lower()
                if key in seen:
                    continue
                seen.add(key)
                results.append(dependent)

            skip_token = getattr(response, 'skip_token', None)
            if not skip_token:
                break

        logger.debug(f"Resource Graph returned {len(results)} dependent resource(s)")
        return results
