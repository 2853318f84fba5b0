"""Control-plane access.

Classes:
    CloudResourceClient: Abstract capability consumed by the teardown engine
    AzureCliClient: Implementation backed by the Azure CLI
    CloudError: Classified platform error
"""

from __future__ import annotations

__all__ = [
    "CloudResourceClient",
    "AzureCliClient",
    "CloudError",
]
