"""Built-in Handlebars helpers for ARM template generation.

Registered under the "built-in" owner before any plugin loads, so
plugins cannot shadow them.
"""

import random
import re
import string

# Fallback API versions per resource type
API_VERSIONS = {
    "Microsoft.Storage/storageAccounts": "2023-05-01",
    "Microsoft.Storage/storageAccounts/fileServices": "2023-05-01",
    "Microsoft.EventGrid/systemTopics": "2023-12-15-preview",
    "Microsoft.EventGrid/systemTopics/eventSubscriptions": "2023-12-15-preview",
    "Microsoft.Compute/virtualMachines": "2024-03-01",
    "Microsoft.Web/sites": "2023-12-01",
    "Microsoft.KeyVault/vaults": "2023-07-01",
    "Microsoft.Sql/servers": "2023-08-01-preview",
    "Microsoft.Resources/deployments": "2022-09-01",
    "Microsoft.ManagedIdentity/userAssignedIdentities": "2023-01-31",
    "Microsoft.OperationalInsights/workspaces": "2023-09-01",
    "Microsoft.Network/networkSecurityGroups": "2023-09-01",
}
DEFAULT_API_VERSION = "2023-05-01"

# Azure storage account names: 3-24 chars, lowercase letters and digits
STORAGE_ACCOUNT_NAME_MAX = 24

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def _random_suffix(length: int = 6) -> str:
    return "".join(random.choices(_SUFFIX_ALPHABET, k=length))


def unique_string(prefix: str) -> str:
    """Append a random suffix so resource names do not collide."""
    return f"{prefix}{_random_suffix()}"


def storage_account_name(prefix: str) -> str:
    """Build a valid storage account name from a prefix."""
    clean = re.sub(r"[^a-z0-9]", "", prefix.lower())
    return f"{clean}{_random_suffix()}"[:STORAGE_ACCOUNT_NAME_MAX]


def latest_api_version(resource_type: str) -> str:
    return API_VERSIONS.get(resource_type, DEFAULT_API_VERSION)


def secure_param(param_name: str) -> str:
    """ARM parameter block for a secret value."""
    return (
        f'"{param_name}": {{\n'
        f'      "type": "securestring",\n'
        f'      "metadata": {{\n'
        f'        "description": "{param_name} (secure parameter)"\n'
        f"      }}\n"
        f"    }}"
    )


def blob_services_api_version() -> str:
    return API_VERSIONS["Microsoft.Storage/storageAccounts"]


BUILTIN_HELPERS = {
    "uniqueString": unique_string,
    "storageAccountName": storage_account_name,
    "latestApiVersion": latest_api_version,
    "secureParam": secure_param,
    "blobServicesApiVersion": blob_services_api_version,
}
