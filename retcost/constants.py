"""
Constants for the retirement cost collector.

This module defines all magic strings and numbers used across the codebase
to prevent typos, ensure consistency, and make maintenance easier.
"""

# =============================================================================
# Input File Columns
# =============================================================================

COLUMN_TYPE = "Type"
COLUMN_RETIRING_FEATURE = "Retiring Feature"
COLUMN_RETIREMENT_DATE = "Retirement Date"
COLUMN_RESOURCE_NAME = "Resource Name"  # holds the full resource id
COLUMN_ACTION = "Action"

REQUIRED_COLUMNS = (
    COLUMN_TYPE,
    COLUMN_RETIRING_FEATURE,
    COLUMN_RETIREMENT_DATE,
    COLUMN_RESOURCE_NAME,
    COLUMN_ACTION,
)

DEFAULT_DELIMITER = ","

# =============================================================================
# Resource Ids
# =============================================================================

# /subscriptions/{sub}/resourceGroups/{rg}/providers/{ns}/{type}/{name...}
RESOURCE_ID_MIN_SEGMENTS = 9
RESOURCE_ID_SUBSCRIPTION_INDEX = 2
RESOURCE_ID_RESOURCE_GROUP_INDEX = 4
RESOURCE_ID_NAME_INDEX = 8

# =============================================================================
# Resource Types
# =============================================================================

# App Service Environment: retiring it affects the plans hosted inside it
AZURE_HOSTING_ENVIRONMENT = "microsoft.web/hostingenvironments"
AZURE_APP_SERVICE_PLAN = "microsoft.web/serverfarms"

ENVIRONMENT_RESOURCE_TYPE = AZURE_HOSTING_ENVIRONMENT

# =============================================================================
# Cost Management API
# =============================================================================

ARM_ENDPOINT = "https://management.azure.com"
ARM_TOKEN_SCOPE = "https://management.azure.com/.default"

COST_QUERY_URL = (
    ARM_ENDPOINT
    + "/subscriptions/{subscription_id}/resourceGroups/{resource_group}"
    + "/providers/Microsoft.CostManagement/query"
)
COST_QUERY_API_VERSION = "2023-03-01"
COST_QUERY_CLIENT_TYPE = "RetirementCostCollector"
COST_QUERY_TIMEOUT = 60  # seconds, per attempt

HTTP_OK = 200
HTTP_TOO_MANY_REQUESTS = 429

# Each quota dimension reports its own retry-after (seconds)
RETRY_AFTER_HEADERS = {
    'qpu': 'x-ms-ratelimit-microsoft.costmanagement-qpu-retry-after',
    'client': 'x-ms-ratelimit-microsoft.costmanagement-clienttype-retry-after',
    'tenant': 'x-ms-ratelimit-microsoft.costmanagement-tenant-retry-after',
    'entity': 'x-ms-ratelimit-microsoft.costmanagement-entity-retry-after',
}

DEFAULT_RETRY_AFTER_SECONDS = 30

# =============================================================================
# Query Status
# =============================================================================

STATUS_OK = "ok"
STATUS_NO_DATA = "no_data"
STATUS_FAILED = "failed"

# =============================================================================
# Output
# =============================================================================

COST_DISPLAY_PLACES = 5

EXPORT_FIELDNAMES = [
    'ResourceName',
    'ResourceType',
    'SubscriptionId',
    'ResourceGroup',
    'RetirementDate',
    'RetiringFeature',
    'Cost',
    'Currency',
]

# =============================================================================
# Exit Codes
# =============================================================================

EXIT_OK = 0
EXIT_FATAL_INPUT = 1
EXIT_AUTH = 2
EXIT_INTERRUPTED = 130
