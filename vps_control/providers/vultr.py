"""
VPS Control Vultr Provider Adapter
==================================

Vultr Cloud Compute integration using the v2 REST API via httpx.

Catalog lookups (regions, plans, operating systems, public ISOs) are
cursor-paginated and cached for a day. Action endpoints answer
204 No Content on success.

API Docs: https://www.vultr.com/api/
"""

import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

import httpx

from ..config import VultrConfig
from .base import (
    UNKNOWN,
    Acknowledgement,
    ChangeRootPasswordParams,
    CreateParams,
    GetConnectionParams,
    IsoStatus,
    LifecycleState,
    Operation,
    RedirectConnection,
    ReinstallParams,
    ResizeParams,
    ServerIdentifierParams,
    ServerInfo,
    ServerProvider,
    SSHConnection,
    lifecycle_operation,
)
from .cache import CATALOG_TTL, CatalogCache, default_cache
from .errors import (
    ClassifiedError,
    ErrorKind,
    ProviderError,
    TransportError,
    classify,
    classify_response,
    condense,
    unsupported,
    upstream_error,
    validation_failed,
)
from .normalizer import int_or_zero, map_state, optional_text, parse_timestamp, text_or_unknown
from .registry import register_provider
from .resolver import MAX_PAGES, PAGE_SIZE, by_id, by_name, resolve_in
from .transport import HttpTransport, log_requests

logger = logging.getLogger(__name__)


# Vultr account-level instance status
VULTR_STATUS_MAP = {
    "pending": LifecycleState.PENDING,
    "suspended": LifecycleState.SUSPENDED,
}

# Vultr power status, used once the instance is active
VULTR_POWER_STATUS_MAP = {
    "running": LifecycleState.RUNNING,
    "stopped": LifecycleState.OFF,
}

ISO_STATE_READY = "ready"
ISO_STATE_MOUNTING = "isomounting"

CONNECTION_APPLICATIONS = ("ssh", "vnc", "console")

# Not part of the shared lifecycle contract
GET_INSTANCE_ISO_STATUS = "get_instance_iso_status"


class VultrApi:
    """Request shaping and response checks for the Vultr v2 API."""

    def __init__(
        self,
        config: VultrConfig,
        logger: Optional[logging.Logger] = None,
        cache: Optional[CatalogCache] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.config = config
        self.cache = cache if cache is not None else default_cache
        self.transport = HttpTransport(
            config.base_url,
            headers={
                "Authorization": f"Bearer {config.api_token}",
                "Accept": "application/json",
            },
            connect_timeout=config.connect_timeout,
            timeout=config.timeout,
            client=client,
        )
        self._send = log_requests(self.transport.send, logger, "Vultr")

    def close(self) -> None:
        self.transport.close()

    def api_call(self, method: str, endpoint: str, query: Optional[Dict[str, Any]] = None,
                 body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Make an authenticated request to the Vultr API.

        Returns:
            Decoded JSON body, or an empty dict for 204 No Content

        Raises:
            ProviderError: Classified transport or HTTP error, or an empty
                body where one was expected
        """
        try:
            response = self._send(method, endpoint, query=query, body=body or None)
        except TransportError as e:
            raise ProviderError(classify(e), "vultr") from e

        error = classify_response(response)
        if error is not None:
            raise ProviderError(error, "vultr")

        if response.status == 204:
            return {}

        if not isinstance(response.data, dict) or not response.data:
            raise upstream_error("Unknown Provider API Error", {
                "http_code": response.status,
                "request_url": response.url,
            })

        return response.data

    def list_all(self, endpoint: str, key: str, query: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Fetch every entry of a cursor-paginated listing."""
        entries: List[Dict[str, Any]] = []
        cursor = None

        for _ in range(MAX_PAGES):
            params = dict(query or {})
            params.update({"per_page": PAGE_SIZE, "cursor": cursor})
            data = self.api_call("GET", endpoint, params)

            entries.extend(data.get(key) or [])

            cursor = ((data.get("meta") or {}).get("links") or {}).get("next")
            if not cursor:
                break

        return entries

    def _catalog(self, name: str, endpoint: str, key: str, query: Optional[Dict[str, Any]] = None):
        def load() -> List[Dict[str, Any]]:
            entries = self.list_all(endpoint, key, query)
            if not entries:
                raise upstream_error(f"No {name.split(':')[0].replace('_', ' ')} were returned by the provider")
            return entries

        return self.cache.get_or_load(f"vultr:{name}", CATALOG_TTL, load)

    # =========================================
    # CATALOGS
    # =========================================

    def list_regions(self) -> List[Dict[str, Any]]:
        return self._catalog("regions", "regions", "regions")

    def list_plans(self) -> List[Dict[str, Any]]:
        plan_type = self.config.plan_type
        return self._catalog(f"plans:{plan_type}", "plans", "plans", {"type": plan_type})

    def list_operating_systems(self) -> List[Dict[str, Any]]:
        return self._catalog("operating_systems", "os", "os")

    def list_public_isos(self) -> List[Dict[str, Any]]:
        return self._catalog("public_isos", "iso-public", "public_isos")

    def get_region(self, region: Any, or_fail: bool = True):
        return resolve_in(
            region,
            self.list_regions(),
            [by_name("id"), by_name("city")],
            or_fail=or_fail,
            what="Region",
        )

    def get_plan(self, plan: Any):
        return resolve_in(plan, self.list_plans(), [by_name("id")], what="Plan",
                          filters={"type": self.config.plan_type})

    def get_operating_system(self, os: Any):
        return resolve_in(os, self.list_operating_systems(), [by_id("id"), by_name("name")],
                          what="Operating system")

    def get_recovery_iso(self) -> Dict[str, Any]:
        return resolve_in(
            self.config.recovery_iso_name,
            self.list_public_isos(),
            [by_name("name")],
            what="Recovery ISO",
        )

    # =========================================
    # INSTANCES
    # =========================================

    def get_instance(self, instance_id: str) -> Dict[str, Any]:
        data = self.api_call("GET", f"instances/{instance_id}")
        return self._instance(data, "Unable to get instance")

    def create_instance(self, region_id: str, plan_id: str, os_id: int, label: str) -> Dict[str, Any]:
        data = self.api_call("POST", "instances", body={
            "region": region_id,
            "plan": plan_id,
            "os_id": os_id,
            "label": label,
            "hostname": label,
        })
        instance = self._instance(data, "Instance creation failed")
        if not instance.get("id"):
            raise upstream_error("Instance creation failed", {"response_data": condense(data)})
        return instance

    def delete_instance(self, instance_id: str) -> None:
        self.api_call("DELETE", f"instances/{instance_id}")

    def start_instance(self, instance_id: str) -> None:
        self.api_call("POST", f"instances/{instance_id}/start")

    def halt_instance(self, instance_id: str) -> None:
        self.api_call("POST", f"instances/{instance_id}/halt")

    def reboot_instance(self, instance_id: str) -> None:
        self.api_call("POST", f"instances/{instance_id}/reboot")

    def reinstall_instance(self, instance_id: str) -> Dict[str, Any]:
        data = self.api_call("POST", f"instances/{instance_id}/reinstall")
        return self._instance(data, "Unable to reinstall instance")

    def change_instance_os(self, instance_id: str, os_id: int) -> Dict[str, Any]:
        data = self.api_call("PATCH", f"instances/{instance_id}", body={"os_id": os_id})
        return self._instance(data, "Unable to reinstall instance")

    def get_available_upgrade_plans(self, instance_id: str) -> List[str]:
        data = self.api_call("GET", f"instances/{instance_id}/upgrades", {"type": "plans"})
        upgrades = data.get("upgrades")
        if not isinstance(upgrades, dict):
            raise upstream_error("Unable to get available instance upgrade plans", {
                "response_data": condense(data),
            })
        return [str(plan) for plan in upgrades.get("plans") or []]

    def upgrade_instance_plan(self, instance_id: str, plan_id: str) -> Dict[str, Any]:
        data = self.api_call("PATCH", f"instances/{instance_id}", body={"plan": plan_id})
        return self._instance(data, "Unable to upgrade instance plan")

    @staticmethod
    def _instance(data: Dict[str, Any], message: str) -> Dict[str, Any]:
        instance = data.get("instance")
        if not isinstance(instance, dict):
            raise upstream_error(message, {"response_data": condense(data)})
        return instance

    # =========================================
    # ISO
    # =========================================

    def get_instance_iso_status(self, instance_id: str) -> Dict[str, Any]:
        data = self.api_call("GET", f"instances/{instance_id}/iso")
        status = data.get("iso_status")
        if not isinstance(status, dict):
            raise upstream_error("Unable to determine instance ISO status", {"response_data": condense(data)})
        return status

    def attach_iso(self, instance_id: str, iso_id: str) -> Dict[str, Any]:
        data = self.api_call("POST", f"instances/{instance_id}/iso/attach", body={"iso_id": iso_id})
        status = data.get("iso_status")
        if not isinstance(status, dict) or status.get("state") not in (ISO_STATE_READY, ISO_STATE_MOUNTING):
            raise upstream_error("Unable to attach recovery ISO", {"response_data": condense(data)})
        return status

    def detach_iso(self, instance_id: str) -> Dict[str, Any]:
        data = self.api_call("POST", f"instances/{instance_id}/iso/detach")
        status = data.get("iso_status")
        if not isinstance(status, dict):
            raise upstream_error("Unable to detach ISO from instance", {"response_data": condense(data)})
        return status


@register_provider
class VultrProvider(ServerProvider):
    """
    Vultr provider adapter.

    Features:
    - Region, plan and OS lookup by id or name
    - SSH and web console connections
    - Plan upgrades
    - SystemRescue recovery ISO attach/detach
    """

    PROVIDER_ID = "vultr"
    PROVIDER_NAME = "Vultr"
    PROVIDER_WEBSITE = "https://www.vultr.com"
    PROVIDER_DESCRIPTION = "Deploy and manage Vultr Cloud Compute virtual servers"
    CAPABILITIES = (
        Operation.ALL
        - {Operation.SUSPEND, Operation.UNSUSPEND, Operation.CHANGE_ROOT_PASSWORD}
    ) | {GET_INSTANCE_ISO_STATUS}

    def __init__(
        self,
        config: VultrConfig,
        logger: Optional[logging.Logger] = None,
        cache: Optional[CatalogCache] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.config = config
        self.api = VultrApi(config, logger=logger, cache=cache, client=client)

    def close(self) -> None:
        self.api.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # =========================================
    # LIFECYCLE
    # =========================================

    @lifecycle_operation(Operation.CREATE)
    def create(self, params: CreateParams):
        region = self.api.get_region(params.location)
        plan = self.api.get_plan(params.size)
        os = self.api.get_operating_system(params.image)

        instance = self.api.create_instance(region["id"], plan["id"], int_or_zero(os["id"]), params.label)

        logger.info("Vultr instance %s creating", instance["id"], extra={
            "provider": self.PROVIDER_ID,
            "instance_id": instance["id"],
        })

        info = self._to_server_info(instance)
        if info.state != LifecycleState.PENDING:
            info = replace(info, state=LifecycleState.CREATING)
        return info, "Instance creating"

    @lifecycle_operation(Operation.GET_INFO)
    def get_info(self, params: ServerIdentifierParams):
        return self._server_info(params.instance_id), "Server info obtained"

    @lifecycle_operation(Operation.GET_CONNECTION)
    def get_connection(self, params: GetConnectionParams):
        application = params.application or "ssh"
        if application not in CONNECTION_APPLICATIONS:
            raise ProviderError(ClassifiedError(
                ErrorKind.UNSUPPORTED,
                "Unsupported application",
                {"application": application},
            ), self.PROVIDER_ID)

        instance = self.api.get_instance(params.instance_id)

        if application == "ssh":
            ip = optional_text(instance.get("main_ip"))
            if not ip or ip == "0.0.0.0":
                raise upstream_error("Instance has no IP address yet", {"instance_id": params.instance_id})
            connection = SSHConnection(
                command=f"ssh root@{ip}",
                password=optional_text(instance.get("default_password")),
            )
            return connection, "SSH command generated"

        url = optional_text(instance.get("kvm"))
        if not url:
            raise upstream_error("Console URL unavailable", {"instance_id": params.instance_id})
        return RedirectConnection(url=url), "Console URL obtained"

    @lifecycle_operation(Operation.CHANGE_ROOT_PASSWORD)
    def change_root_password(self, params: ChangeRootPasswordParams):
        raise unsupported(Operation.CHANGE_ROOT_PASSWORD, self.PROVIDER_ID)

    @lifecycle_operation(Operation.RESIZE)
    def resize(self, params: ResizeParams):
        info = self._server_info(params.instance_id)

        if (
            self.config.resize_requires_stop
            and info.state == LifecycleState.RUNNING
            and not params.resize_running
        ):
            raise validation_failed("Resize not available while server is running", {
                "instance_id": params.instance_id,
                "state": info.state.value,
            })

        plan = self.api.get_plan(params.size)
        available = self.api.get_available_upgrade_plans(params.instance_id)
        if str(plan["id"]) not in available:
            raise validation_failed("Plan is not an available upgrade for this instance", {
                "plan": plan["id"],
                "available_plans": available,
            })

        instance = self.api.upgrade_instance_plan(params.instance_id, plan["id"])
        return self._to_server_info(instance), "Instance plan upgrading"

    @lifecycle_operation(Operation.REINSTALL)
    def reinstall(self, params: ReinstallParams):
        current = self.api.get_instance(params.instance_id)
        os = self.api.get_operating_system(params.image)
        os_id = int_or_zero(os["id"])

        if os_id == int_or_zero(current.get("os_id")):
            instance = self.api.reinstall_instance(params.instance_id)
        else:
            instance = self.api.change_instance_os(params.instance_id, os_id)

        info = self._to_server_info(instance)
        return (
            replace(info, image=text_or_unknown(os.get("name")), state=LifecycleState.REBUILDING),
            "Instance reinstalling",
        )

    @lifecycle_operation(Operation.REBOOT)
    def reboot(self, params: ServerIdentifierParams):
        info = self._server_info(params.instance_id)
        self.api.reboot_instance(params.instance_id)
        return replace(info, state=LifecycleState.RESTARTING), "Instance restarting"

    @lifecycle_operation(Operation.SHUTDOWN)
    def shutdown(self, params: ServerIdentifierParams):
        info = self._server_info(params.instance_id)

        if info.state == LifecycleState.OFF:
            return info, "Instance already off"

        self.api.halt_instance(params.instance_id)
        return replace(info, state=LifecycleState.STOPPING), "Instance stopping"

    @lifecycle_operation(Operation.POWER_ON)
    def power_on(self, params: ServerIdentifierParams):
        info = self._server_info(params.instance_id)

        if info.state == LifecycleState.RUNNING:
            return info, "Instance already on"

        self.api.start_instance(params.instance_id)
        return replace(info, state=LifecycleState.STARTING), "Instance starting"

    @lifecycle_operation(Operation.SUSPEND)
    def suspend(self, params: ServerIdentifierParams):
        raise unsupported(Operation.SUSPEND, self.PROVIDER_ID)

    @lifecycle_operation(Operation.UNSUSPEND)
    def unsuspend(self, params: ServerIdentifierParams):
        raise unsupported(Operation.UNSUSPEND, self.PROVIDER_ID)

    @lifecycle_operation(GET_INSTANCE_ISO_STATUS)
    def get_instance_iso_status(self, params: ServerIdentifierParams):
        status = self._iso_status(params.instance_id)
        return status, "ISO status obtained"

    @lifecycle_operation(Operation.ATTACH_RECOVERY_ISO)
    def attach_recovery_iso(self, params: ServerIdentifierParams):
        """Mount the recovery ISO and check the instance reports it mounted."""
        iso = self.api.get_recovery_iso()
        iso_id = str(iso["id"])

        self.api.attach_iso(params.instance_id, iso_id)

        status = self._iso_status(params.instance_id)
        if status.iso_id != iso_id:
            raise upstream_error("Unable to attach recovery ISO (iso mismatch)", {
                "instance_id": params.instance_id,
                "iso_id": iso_id,
                "mounted_iso_id": status.iso_id,
            })

        return self._server_info(params.instance_id), "Recovery ISO attached"

    @lifecycle_operation(Operation.DETACH_RECOVERY_ISO)
    def detach_recovery_iso(self, params: ServerIdentifierParams):
        status = self._iso_status(params.instance_id)

        if not status.mounted:
            return self._server_info(params.instance_id), "No ISO attached"

        iso = self.api.get_recovery_iso()
        if status.iso_id != str(iso["id"]):
            raise ProviderError(ClassifiedError(
                ErrorKind.CONFLICT,
                "Attached ISO is not the recovery ISO",
                {"instance_id": params.instance_id, "mounted_iso_id": status.iso_id},
            ), self.PROVIDER_ID)

        self.api.detach_iso(params.instance_id)
        return self._server_info(params.instance_id), "Recovery ISO detached"

    @lifecycle_operation(Operation.TERMINATE)
    def terminate(self, params: ServerIdentifierParams):
        self.api.delete_instance(params.instance_id)
        message = "Instance deleted"
        return Acknowledgement(params.instance_id, message), message

    # =========================================
    # NORMALIZATION
    # =========================================

    def _iso_status(self, instance_id: str) -> IsoStatus:
        status = self.api.get_instance_iso_status(instance_id)
        return IsoStatus(
            state=text_or_unknown(status.get("state")),
            iso_id=optional_text(status.get("iso_id")),
        )

    def _server_info(self, instance_id: str) -> ServerInfo:
        return self._to_server_info(self.api.get_instance(instance_id))

    def _to_server_info(self, instance: Dict[str, Any]) -> ServerInfo:
        status = instance.get("status")
        state = map_state(status, VULTR_STATUS_MAP)
        if state == LifecycleState.UNKNOWN:
            state = map_state(instance.get("power_status"), VULTR_POWER_STATUS_MAP)

        plan = optional_text(instance.get("plan"))
        vcpus = int_or_zero(instance.get("vcpu_count"))
        ram = int_or_zero(instance.get("ram"))
        disk = int_or_zero(instance.get("disk"))
        size = f"{plan} ({vcpus} vCPU, {ram} MB RAM, {disk} GB disk)" if plan else UNKNOWN

        return ServerInfo(
            instance_id=str(instance.get("id")),
            state=state,
            suspended=str(status).lower() == "suspended",
            label=text_or_unknown(instance.get("label")),
            hostname=text_or_unknown(instance.get("hostname")),
            ip_address=text_or_unknown(instance.get("main_ip")),
            image=text_or_unknown(instance.get("os")),
            size=size,
            location=self._location(instance.get("region")),
            virtualization_type="kvm",
            memory_mb=ram,
            cpu_cores=vcpus,
            disk_mb=disk * 1024,
            created_at=parse_timestamp(instance.get("date_created")),
        )

    def _location(self, region_id: Any) -> str:
        if not region_id:
            return UNKNOWN
        region = self.api.get_region(region_id, or_fail=False)
        if not region:
            return str(region_id)
        parts = [region.get("city"), region.get("country")]
        return ", ".join(str(p) for p in parts if p) or str(region_id)
