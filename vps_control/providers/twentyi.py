"""
VPS Control 20i Provider Adapter
================================

20i reseller VPS integration using the reseller REST API via httpx.

The bearer token is the base64 encoded general API key. VPS sizes are a
fixed ladder of package types (vps-a .. vps-i) keyed by core count.

API Docs: https://api.20i.com
"""

import base64
import logging
from dataclasses import replace
from typing import Any, Dict, Optional

import httpx

from ..config import TwentyIConfig
from .base import (
    ChangeRootPasswordParams,
    CreateParams,
    GetConnectionParams,
    LifecycleState,
    Operation,
    ReinstallParams,
    ResizeParams,
    ServerIdentifierParams,
    ServerInfo,
    ServerProvider,
    SSHConnection,
    lifecycle_operation,
)
from .errors import (
    ClassifiedError,
    ErrorKind,
    ProviderError,
    TransportError,
    classify,
    classify_response,
    condense,
    not_found,
    unsupported,
    upstream_error,
)
from .normalizer import int_or_zero, map_state, optional_text, parse_timestamp, text_or_unknown
from .registry import register_provider
from .resolver import by_id, by_name, resolve_in
from .transport import HttpTransport, log_requests

logger = logging.getLogger(__name__)


# libvirt domain states as reported in Status.Domstate
TWENTYI_STATUS_MAP = {
    "running": LifecycleState.RUNNING,
    "shut off": LifecycleState.OFF,
    "shutoff": LifecycleState.OFF,
    "paused": LifecycleState.OFF,
    "pending": LifecycleState.PENDING,
}

# Package type per core count
TWENTYI_SIZES = [
    {"cores": 1, "name": "vps-a"},
    {"cores": 2, "name": "vps-b"},
    {"cores": 4, "name": "vps-c"},
    {"cores": 6, "name": "vps-d"},
    {"cores": 8, "name": "vps-e"},
    {"cores": 10, "name": "vps-f"},
    {"cores": 12, "name": "vps-g"},
    {"cores": 16, "name": "vps-h"},
    {"cores": 20, "name": "vps-i"},
]


def size_type_name(size: Any) -> str:
    """Resolve a size token (core count or package name) to a package type."""
    entry = resolve_in(size, TWENTYI_SIZES, [by_id("cores"), by_name("name")], what="Server size")
    return entry["name"]


class TwentyIApi:
    """Request shaping and response checks for the 20i reseller API."""

    def __init__(
        self,
        config: TwentyIConfig,
        logger: Optional[logging.Logger] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.config = config
        token = base64.b64encode(config.general_api_key.encode()).decode()
        self.transport = HttpTransport(
            config.base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            },
            connect_timeout=config.connect_timeout,
            timeout=config.timeout,
            client=client,
        )
        self._send = log_requests(self.transport.send, logger, "20i")

    def close(self) -> None:
        self.transport.close()

    def api_call(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = self._send(method, path, body=body)
        except TransportError as e:
            raise ProviderError(classify(e), "twentyi") from e

        error = classify_response(response)
        if error is not None:
            raise ProviderError(error, "twentyi")

        return response.data

    def get_vps(self, vps_id: str) -> Dict[str, Any]:
        data = self.api_call("GET", f"/vps/{vps_id}")
        if not isinstance(data, dict) or not data.get("id"):
            raise not_found("VPS not found", {"vps_id": vps_id})
        return data

    def add_vps(self, label: str, image: str, type_name: str) -> str:
        data = self.api_call("POST", "/reseller/*/addVPS", {
            "configuration": {"Name": label},
            "forUser": None,
            "options": {"os": image},
            "periodMonths": 1,
            "type": type_name,
        })

        if not isinstance(data, dict) or not data.get("result"):
            raise upstream_error("VPS creation did not return an id", {
                "response_data": condense(data) if isinstance(data, dict) else data,
            })
        return str(data["result"])

    def change_password(self, vps_id: str, password: str) -> None:
        self.api_call("POST", f"/vps/{vps_id}/changePassword", {"password": password})

    def set_user_status(self, vps_id: str, enabled: bool) -> None:
        self.api_call("POST", f"/vps/{vps_id}/userStatus", {
            "includeRepeated": True,
            "subservices": {"default": enabled},
        })

    def reboot(self, vps_id: str) -> None:
        self.api_call("POST", f"/vps/{vps_id}/reboot", {})

    def stop(self, vps_id: str) -> None:
        self.api_call("POST", f"/vps/{vps_id}/stop", {})

    def start(self, vps_id: str) -> None:
        self.api_call("POST", f"/vps/{vps_id}/start", {})

    def rebuild(self, vps_id: str, image: str) -> None:
        self.api_call("POST", f"/vps/{vps_id}/rebuild", {
            "cpanel": False,
            "cpanelCode": False,
            "VpsOsId": image,
        })


@register_provider
class TwentyIProvider(ServerProvider):
    """
    20i provider adapter.

    Suspension is not reported by the VPS endpoint, so suspend and unsuspend
    always reach the API.
    """

    PROVIDER_ID = "twentyi"
    PROVIDER_NAME = "20i"
    PROVIDER_WEBSITE = "https://www.20i.com"
    PROVIDER_DESCRIPTION = "Deploy and manage 20i private virtual servers"
    CAPABILITIES = Operation.ALL - {
        Operation.RESIZE,
        Operation.ATTACH_RECOVERY_ISO,
        Operation.DETACH_RECOVERY_ISO,
        Operation.TERMINATE,
    }

    def __init__(
        self,
        config: TwentyIConfig,
        logger: Optional[logging.Logger] = None,
        cache: Any = None,
        client: Optional[httpx.Client] = None,
    ):
        # no catalogs to cache; accepted for a uniform constructor
        self.config = config
        self.api = TwentyIApi(config, logger=logger, client=client)

    def close(self) -> None:
        self.api.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    @lifecycle_operation(Operation.CREATE)
    def create(self, params: CreateParams):
        vps_id = self.api.add_vps(params.label, params.image, size_type_name(params.size))

        logger.info("20i VPS %s created", vps_id, extra={
            "provider": self.PROVIDER_ID,
            "instance_id": vps_id,
        })

        info = self._server_info(vps_id)
        if info.state != LifecycleState.PENDING:
            info = replace(info, state=LifecycleState.CREATING)
        return info, "Server created successfully"

    @lifecycle_operation(Operation.GET_INFO)
    def get_info(self, params: ServerIdentifierParams):
        return self._server_info(params.instance_id), "Server info obtained"

    @lifecycle_operation(Operation.GET_CONNECTION)
    def get_connection(self, params: GetConnectionParams):
        if params.application and params.application != "ssh":
            raise ProviderError(ClassifiedError(
                ErrorKind.UNSUPPORTED,
                "Unsupported application",
                {"application": params.application},
            ), self.PROVIDER_ID)

        vps = self.api.get_vps(params.instance_id)
        ip = _main_ip(vps)
        if not ip:
            raise upstream_error("VPS has no IP address yet", {"instance_id": params.instance_id})

        connection = SSHConnection(
            command=f"ssh root@{ip}",
            password=optional_text(vps.get("SuperPassword")),
        )
        return connection, "SSH command generated"

    @lifecycle_operation(Operation.CHANGE_ROOT_PASSWORD)
    def change_root_password(self, params: ChangeRootPasswordParams):
        self.api.change_password(params.instance_id, params.root_password)
        return self._server_info(params.instance_id), "Root password has been updated"

    @lifecycle_operation(Operation.RESIZE)
    def resize(self, params: ResizeParams):
        raise unsupported(Operation.RESIZE, self.PROVIDER_ID)

    @lifecycle_operation(Operation.REINSTALL)
    def reinstall(self, params: ReinstallParams):
        self.api.rebuild(params.instance_id, params.image)
        info = self._server_info(params.instance_id)
        return replace(info, state=LifecycleState.REBUILDING), "Server rebuilding with fresh image"

    @lifecycle_operation(Operation.REBOOT)
    def reboot(self, params: ServerIdentifierParams):
        info = self._server_info(params.instance_id)
        self.api.reboot(params.instance_id)
        return replace(info, state=LifecycleState.RESTARTING), "Server is rebooting"

    @lifecycle_operation(Operation.SHUTDOWN)
    def shutdown(self, params: ServerIdentifierParams):
        info = self._server_info(params.instance_id)

        if info.state == LifecycleState.OFF:
            return info, "Virtual server already off"

        self.api.stop(params.instance_id)
        return replace(info, state=LifecycleState.STOPPING), "Server is shutting down"

    @lifecycle_operation(Operation.POWER_ON)
    def power_on(self, params: ServerIdentifierParams):
        info = self._server_info(params.instance_id)

        if info.state == LifecycleState.RUNNING:
            return info, "Virtual server already on"

        self.api.start(params.instance_id)
        return replace(info, state=LifecycleState.STARTING), "Server is booting"

    @lifecycle_operation(Operation.SUSPEND)
    def suspend(self, params: ServerIdentifierParams):
        info = self._server_info(params.instance_id)
        self.api.set_user_status(params.instance_id, enabled=False)
        return replace(info, suspended=True), "Server suspended"

    @lifecycle_operation(Operation.UNSUSPEND)
    def unsuspend(self, params: ServerIdentifierParams):
        info = self._server_info(params.instance_id)
        self.api.set_user_status(params.instance_id, enabled=True)
        return replace(info, suspended=False), "Server unsuspended"

    @lifecycle_operation(Operation.ATTACH_RECOVERY_ISO)
    def attach_recovery_iso(self, params: ServerIdentifierParams):
        raise unsupported(Operation.ATTACH_RECOVERY_ISO, self.PROVIDER_ID)

    @lifecycle_operation(Operation.DETACH_RECOVERY_ISO)
    def detach_recovery_iso(self, params: ServerIdentifierParams):
        raise unsupported(Operation.DETACH_RECOVERY_ISO, self.PROVIDER_ID)

    @lifecycle_operation(Operation.TERMINATE)
    def terminate(self, params: ServerIdentifierParams):
        raise unsupported(Operation.TERMINATE, self.PROVIDER_ID)

    def _server_info(self, vps_id: str) -> ServerInfo:
        return self._to_server_info(self.api.get_vps(vps_id))

    @staticmethod
    def _to_server_info(vps: Dict[str, Any]) -> ServerInfo:
        configuration = vps.get("configuration") or {}
        status = vps.get("Status") or {}
        os = vps.get("OS") or {}

        if status.get("PendingAction") and status.get("CurrentAction") == "nothing":
            state = LifecycleState.PENDING
        else:
            state = map_state(status.get("Domstate"), TWENTYI_STATUS_MAP)

        return ServerInfo(
            instance_id=str(vps.get("id")),
            state=state,
            label=text_or_unknown(vps.get("name")),
            hostname=text_or_unknown(vps.get("name")),
            ip_address=text_or_unknown(_main_ip(vps)),
            image=text_or_unknown(os.get("DisplayName")),
            location=text_or_unknown(configuration.get("location")),
            virtualization_type="kvm",
            memory_mb=int_or_zero(configuration.get("RamMb")),
            cpu_cores=int_or_zero(configuration.get("CpuCores")),
            disk_mb=int_or_zero(configuration.get("OsDiskSizeGb")) * 1024,
            created_at=parse_timestamp(vps.get("CreatedAt")),
            updated_at=parse_timestamp(vps.get("UpdatedAt")),
        )


def _main_ip(vps: Dict[str, Any]) -> Optional[str]:
    try:
        return optional_text(vps["Network"][0]["Addresses"][0]["IpAddress"])
    except (KeyError, IndexError, TypeError):
        return None
