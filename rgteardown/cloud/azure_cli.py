"""Azure CLI implementation of CloudResourceClient.

Runs `az` with JSON output. Authentication is whatever `az login` established.
"""

from __future__ import annotations

import json
import logging
import subprocess
from typing import Any, Dict, List, Optional, Sequence

from ..models.resource import Lock, ResourceDescriptor, ResourceGroupHandle, ResourceKind
from .client import CloudResourceClient
from .errors import CloudError, ErrorKind, classify_error
from .ids import lock_scope, parse_resource_id

logger = logging.getLogger(__name__)

ARM_ENDPOINT = "https://management.azure.com"

# Provider namespace (lowercase) -> API version used for raw REST calls
API_VERSIONS = {
    "microsoft.network": "2023-09-01",
    "microsoft.compute": "2023-09-01",
    "microsoft.netapp": "2023-11-01",
    "microsoft.insights": "2022-06-01",
    "microsoft.recoveryservices": "2023-04-01",
    "microsoft.authorization": "2020-05-01",
}
SITE_RECOVERY_API_VERSION = "2023-08-01"
DEFAULT_API_VERSION = "2021-04-01"

# Container listings need a management-type filter; one query per workload family
CONTAINER_MANAGEMENT_TYPES = ("AzureIaasVM", "AzureWorkload", "AzureSql", "AzureStorage", "MAB", "DPM", "AzureBackupServer")


def api_version_for(path: str) -> str:
    """API version for an ARM path, chosen by its last provider namespace."""
    if "/replication" in path.lower():
        return SITE_RECOVERY_API_VERSION
    namespace = parse_resource_id(path).namespace
    if not namespace:
        return DEFAULT_API_VERSION
    return API_VERSIONS.get(namespace.lower(), DEFAULT_API_VERSION)


def _flatten_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


class AzureCliClient(CloudResourceClient):
    """Control-plane client backed by the Azure CLI.

    Attributes:
        az_path: Path to the az executable
        timeout: Per-command timeout in seconds
    """

    def __init__(self, subscription: Optional[str] = None, az_path: str = "az", timeout: float = 900.0) -> None:
        """Initialize the client.

        Args:
            subscription: Subscription ID (default: the CLI's current subscription)
            az_path: az executable (default: "az" on PATH)
            timeout: Timeout for one az invocation in seconds
        """
        self._subscription = subscription
        self.az_path = az_path
        self.timeout = timeout

    @property
    def subscription(self) -> Optional[str]:
        if self._subscription is None:
            account = self._az(["account", "show"], subscription_scoped=False)
            self._subscription = account.get("id") if isinstance(account, dict) else None
        return self._subscription

    # ----- command runner -----

    def _az(self, args: List[str], subscription_scoped: bool = True, parse: bool = True) -> Any:
        """Run one az command.

        Args:
            args: Arguments after "az"
            subscription_scoped: Append --subscription when a subscription is known
            parse: Parse stdout as JSON

        Returns:
            Parsed JSON (None for empty output) or raw stdout

        Raises:
            CloudError: If the command fails or times out
        """
        cmd = [self.az_path] + list(args)
        if subscription_scoped and self._subscription:
            cmd += ["--subscription", self._subscription]
        if parse:
            cmd += ["--output", "json"]

        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout, check=False)
        except subprocess.TimeoutExpired as e:
            raise CloudError(ErrorKind.TIMEOUT, f"az {' '.join(args[:3])} timed out after {self.timeout}s") from e
        except FileNotFoundError as e:
            raise CloudError(ErrorKind.FATAL, f"Azure CLI not found at '{self.az_path}'") from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise CloudError(classify_error(stderr), stderr or f"az exited with code {result.returncode}")

        if not parse:
            return result.stdout
        output = (result.stdout or "").strip()
        if not output:
            return None
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            raise CloudError(ErrorKind.FATAL, f"Failed to parse az output: {e}") from e

    def _url(self, path: str) -> str:
        separator = "&" if "?" in path else "?"
        if "api-version=" in path:
            return f"{ARM_ENDPOINT}{path}"
        return f"{ARM_ENDPOINT}{path}{separator}api-version={api_version_for(path.split('?')[0])}"

    def _descriptor(self, data: Dict[str, Any], group: Optional[str] = None) -> ResourceDescriptor:
        resource_id = data["id"]
        arm_type = data.get("type") or parse_resource_id(resource_id).arm_type or ""
        return ResourceDescriptor(
            id=resource_id,
            kind=ResourceKind.from_arm_type(arm_type),
            group=group or data.get("resourceGroup") or parse_resource_id(resource_id).resource_group or "",
            name=data.get("name") or "",
            arm_type=arm_type,
            properties=data.get("properties") or {},
            tags=data.get("tags") or {},
        )

    # ----- CloudResourceClient -----

    def list_resource_groups(self) -> List[ResourceGroupHandle]:
        groups = self._az(["group", "list"]) or []
        return [
            ResourceGroupHandle(name=g["name"], tags=g.get("tags") or {}, id=g.get("id"), location=g.get("location"))
            for g in groups
        ]

    def list_resources(
        self, group: str, kinds: Optional[Sequence[ResourceKind]] = None
    ) -> List[ResourceDescriptor]:
        items = self._az(["resource", "list", "--resource-group", group]) or []
        descriptors = [self._descriptor(item, group) for item in items]
        if kinds:
            descriptors = [d for d in descriptors if d.kind in kinds]
        return descriptors

    def get_resource(self, resource_id: str) -> ResourceDescriptor:
        data = self.rest("GET", resource_id)
        if not data:
            raise CloudError(ErrorKind.NOT_FOUND, f"Resource {resource_id} not found")
        return self._descriptor(data)

    def list_children(self, parent_id: str, child_path: str) -> List[ResourceDescriptor]:
        if child_path == "backupProtectionContainers":
            paths = [
                f"{parent_id}/{child_path}?$filter=backupManagementType eq '{t}'"
                for t in CONTAINER_MANAGEMENT_TYPES
            ]
        else:
            paths = [f"{parent_id}/{child_path}"]

        children: List[ResourceDescriptor] = []
        for path in paths:
            url: Optional[str] = self._url(path)
            while url:
                page = self._az(["rest", "--method", "get", "--url", url]) or {}
                children.extend(self._descriptor(item) for item in page.get("value", []))
                url = page.get("nextLink")
        return children

    def delete_resource(self, resource_id: str, force: bool = False) -> None:
        kind = ResourceKind.from_arm_type(parse_resource_id(resource_id).arm_type or "")
        if force and kind in (ResourceKind.VIRTUAL_MACHINE, ResourceKind.NETAPP_VOLUME):
            # Both providers accept a force flag as a query parameter on DELETE
            flag = "forceDeletion=true" if kind == ResourceKind.VIRTUAL_MACHINE else "forceDelete=true"
            self.rest("DELETE", f"{resource_id}?{flag}")
            return

        self._az(["resource", "delete", "--ids", resource_id], parse=False)

    def update_resource(self, resource_id: str, patch: Dict[str, Any]) -> None:
        args = ["resource", "update", "--ids", resource_id]
        for path, value in patch.items():
            if value is None:
                args += ["--remove", path]
            else:
                args += ["--set", f"{path}={_flatten_value(value)}"]
        self._az(args)

    def delete_resource_group(
        self, name: str, force: bool = False, force_deletion_types: Sequence[str] = ()
    ) -> None:
        args = ["group", "delete", "--name", name, "--yes"]
        if force:
            for resource_type in force_deletion_types:
                args += ["--force-deletion-types", resource_type]
        self._az(args, parse=False)

    def list_locks(self, scope: str) -> List[Lock]:
        page = self.rest("GET", f"{scope}/providers/Microsoft.Authorization/locks") or {}
        return [
            Lock(
                id=item["id"],
                name=item.get("name", ""),
                level=(item.get("properties") or {}).get("level", "CanNotDelete"),
                scope=lock_scope(item["id"]),
                notes=(item.get("properties") or {}).get("notes"),
            )
            for item in page.get("value", [])
        ]

    def delete_lock(self, lock_id: str) -> None:
        self._az(["lock", "delete", "--ids", lock_id], parse=False)

    def invoke_action(self, resource_id: str, action: str, body: Optional[Dict[str, Any]] = None) -> Any:
        return self.rest("POST", f"{resource_id}/{action}", body)

    def rest(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        args = ["rest", "--method", method.lower(), "--url", self._url(path)]
        if body is not None:
            args += ["--body", json.dumps(body)]
        return self._az(args)

    def list_rule_associations(self, rule_name: str, group: str) -> List[ResourceDescriptor]:
        items = self._az(
            ["monitor", "data-collection", "rule", "association", "list", "--rule-name", rule_name, "--resource-group", group]
        ) or []
        return [self._descriptor(item, group) for item in items]

    def delete_rule_association(self, name: str, target_id: str) -> None:
        self._az(
            ["monitor", "data-collection", "rule", "association", "delete", "--name", name, "--resource", target_id, "--yes"],
            parse=False,
        )
