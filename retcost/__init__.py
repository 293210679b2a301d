"""
Retirement cost collector library.
"""
from . import constants
from .aggregator import CostAggregator
from .auth import AzureCredentialProvider, CredentialProvider, StaticTokenProvider
from .cost_query import CostQueryClient, QueryConfig, compute_retry_after
from .errors import (
    AuthError,
    FatalInputError,
    InputFileEmpty,
    InputFileMissing,
    InvalidBillingPeriod,
    InvalidEndDate,
    NoMatchingResources,
    RateLimited,
    RetirementCostError,
    UpstreamQueryFailed,
)
from .expander import AzureResourceGraph, ResourceGraph, expand_dependents
from .models import BillingPeriod, CostResult, DependentResource, ResourceRecord, parse_resource_id
from .pipeline import RunContext, run_pipeline
from .resource_list import filter_and_sort, load_resources

__all__ = [
    'constants',
    # Models
    'BillingPeriod',
    'CostResult',
    'DependentResource',
    'ResourceRecord',
    'parse_resource_id',
    # Errors
    'RetirementCostError',
    'FatalInputError',
    'InvalidBillingPeriod',
    'InvalidEndDate',
    'InputFileMissing',
    'InputFileEmpty',
    'NoMatchingResources',
    'AuthError',
    'RateLimited',
    'UpstreamQueryFailed',
    # Pipeline pieces
    'load_resources',
    'filter_and_sort',
    'ResourceGraph',
    'AzureResourceGraph',
    'expand_dependents',
    'CredentialProvider',
    'AzureCredentialProvider',
    'StaticTokenProvider',
    'CostQueryClient',
    'QueryConfig',
    'compute_retry_after',
    'CostAggregator',
    'RunContext',
    'run_pipeline',
]
