"""
VPS Control Virtualizor Provider Adapter
========================================

Virtualizor integration using its admin API directly via httpx.

Virtualizor is a hypervisor control panel (KVM, Xen, OpenVZ, Proxmox,
Virtuozzo, LXC). Its API is a single endpoint, ``index.php?act=<action>``,
taking form-encoded POST bodies and answering JSON. Application errors come
back with HTTP 200 and an ``error`` / ``fatal_error_text`` payload; a
missing ``done`` key means the action did not happen.

API Docs: https://www.virtualizor.com/docs/admin-api/
"""

import hashlib
import logging
import secrets
import string
from dataclasses import replace
from typing import Any, Dict, Iterator, List, Optional

import httpx

from ..config import (
    LOCATION_TYPE_SERVER,
    LOCATION_TYPE_SERVER_GROUP,
    VirtualizorConfig,
)
from .base import (
    UNKNOWN,
    Acknowledgement,
    ChangeRootPasswordParams,
    CreateParams,
    FormPostConnection,
    GetConnectionParams,
    LifecycleState,
    Operation,
    RedirectConnection,
    ReinstallParams,
    ResizeParams,
    ServerIdentifierParams,
    ServerInfo,
    ServerProvider,
    VNCConnection,
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
    not_found,
    unsupported,
    upstream_error,
    validation_failed,
)
from .normalizer import (
    first_or_unknown,
    int_or_zero,
    location_to_string,
    map_state,
    optional_text,
    text_or_unknown,
)
from .registry import register_provider
from .resolver import (
    NOT_FOUND,
    PAGE_SIZE,
    by_id,
    by_name,
    entries_from,
    is_numeric,
    paginate,
    resolve,
    resolve_in,
)
from .transport import HttpTransport, log_requests

logger = logging.getLogger(__name__)


# Virtualizor numeric power status
VIRTUALIZOR_STATUS_MAP = {
    0: LifecycleState.OFF,
    1: LifecycleState.RUNNING,
    2: LifecycleState.SUSPENDED,
}

DEFAULT_VIRTUALIZATION_TYPE = "kvm"

SSO_PORT = 4083

CONTROL_PANEL_LOGIN_PORTS = {
    "whm": 2087,
    "cpanel": 2083,
}


def generate_password(length: int = 16) -> str:
    """Random password with at least one lower, upper, digit and symbol."""
    pools = [string.ascii_lowercase, string.ascii_uppercase, string.digits, "!@#$%^&*-_=+"]
    chars = [secrets.choice(pool) for pool in pools]
    everything = "".join(pools)
    chars += [secrets.choice(everything) for _ in range(length - len(chars))]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


class VirtualizorApi:
    """Request shaping and response checks for the Virtualizor admin API."""

    def __init__(
        self,
        config: VirtualizorConfig,
        logger: Optional[logging.Logger] = None,
        cache: Optional[CatalogCache] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.config = config
        self.cache = cache if cache is not None else default_cache
        self.transport = HttpTransport(
            config.base_url,
            headers={"Accept": "application/json"},
            connect_timeout=config.connect_timeout,
            timeout=config.timeout,
            verify=not config.ignore_ssl_errors,
            client=client,
        )
        self._send = log_requests(self.transport.send, logger, "Virtualizor")

    def close(self) -> None:
        self.transport.close()

    # =========================================
    # TRANSPORT
    # =========================================

    def api_call(self, act: str, query: Optional[Dict[str, Any]] = None,
                 post: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Call one admin API action.

        Args:
            act: API action name
            query: Query string params
            post: Form body params

        Returns:
            Decoded response data (empty dict for an empty body)

        Raises:
            ProviderError: Classified transport, HTTP or vendor error
        """
        params = dict(query or {})
        params.update({
            "api": "json",
            "act": act,
            "adminapikey": self.config.api_key,
            "adminapipass": self.config.api_password,
            "apikey": self._api_key_hash(),
        })

        try:
            response = self._send("POST", "index.php", query=params, form=post or {})
        except TransportError as e:
            raise ProviderError(classify(e), "virtualizor") from e

        error = classify_response(response)
        if error is not None:
            raise ProviderError(error.merged({"act": act}), "virtualizor")

        return response.data if isinstance(response.data, dict) else {}

    def _api_key_hash(self) -> str:
        salt = "".join(secrets.choice(string.ascii_lowercase + string.digits) for _ in range(8))
        digest = hashlib.md5((self.config.api_password + salt).encode()).hexdigest()
        return salt + digest

    @staticmethod
    def _require_done(data: Dict[str, Any], message: str, **context: Any) -> Dict[str, Any]:
        if not data.get("done"):
            raise upstream_error(message, {**context, "response_data": condense(data)})
        return data

    # =========================================
    # VIRTUAL SERVERS
    # =========================================

    def create_virtual_server(
        self,
        virtualization_type: str,
        plan_id: Any,
        os_id: Any,
        server_group_id: Any,
        server_id: Any,
        hostname: str,
        email: Optional[str],
        password: Optional[str],
    ) -> Dict[str, Any]:
        password = password or generate_password()

        data = self.api_call("addvs", {}, {
            "virt": virtualization_type,
            "node_select": 1,
            "server_group": server_group_id,
            "slave_server": server_id,
            "plid": plan_id,
            "osid": os_id,
            "hostname": hostname,
            "user_email": email,
            "user_pass": password,
            "rootpass": password,
            "control_panel": 0,
            "addvps": 1,
        })

        self._require_done(
            data,
            "Virtual server creation unsuccessful",
            virt=virtualization_type,
            slave_server=server_id,
            server_group=server_group_id,
            plid=plan_id,
            osid=os_id,
            hostname=hostname,
        )

        data.setdefault("vpsid", data["done"])
        return data

    def get_all_virtual_server_info(self, vps_id: Any) -> Dict[str, Any]:
        """``editvs`` returns the server along with its plan and host server."""
        data = self.api_call("editvs", {"vpsid": vps_id})

        if not data.get("vps"):
            raise not_found("Virtual server not found", {
                "vpsid": vps_id,
                "response_data": condense(data),
            })

        return data

    def run_virtual_server_action(self, vps_id: Any, action: str) -> Dict[str, Any]:
        """Run start/stop/restart/poweroff."""
        data = self.api_call("vs", {"vpsid": vps_id, "action": action})
        return self._require_done(data, f"Virtual server {action} unsuccessful", vpsid=vps_id, action=action)

    def change_root_password(self, vps_id: Any, root_password: str) -> Dict[str, Any]:
        data = self.api_call("managevps", {"vpsid": vps_id}, {
            "rootpass": root_password,
            "enable_guest_agent": 1,
            "editvps": 1,
        })

        done = data.get("done")
        if not (isinstance(done, dict) and (done.get("change_pass_msg") or done.get("done"))):
            raise upstream_error("Virtual server password change unsuccessful", {
                "vpsid": vps_id,
                "response_data": condense(data),
            })
        return data

    def change_virtual_server_plan(self, vps_id: Any, plan_id: Any) -> Dict[str, Any]:
        data = self.api_call("editvs", {"vpsid": vps_id}, {"plid": plan_id, "editvps": 1})
        return self._require_done(data, "Virtual server plan change unsuccessful", vpsid=vps_id, plid=plan_id)

    def rebuild_virtual_server(self, vps_id: Any, os_id: Any, server_id: Any = None,
                               password: Optional[str] = None) -> Dict[str, Any]:
        password = password or generate_password()
        query = {"changeserid": server_id} if server_id else {}

        data = self.api_call("rebuild", query, {
            "vpsid": vps_id,
            "osid": os_id,
            "newos": os_id,
            "newpass": password,
            "conf": password,
            "control_panel": 0,
            "reos": 1,
            "format_primary": 0,
            "eu_send_rebuild_email": 0,
        })
        return self._require_done(data, "Virtual server rebuild unsuccessful", vpsid=vps_id, osid=os_id)

    def suspend_virtual_server(self, vps_id: Any) -> Dict[str, Any]:
        data = self.api_call("vs", {"suspend": vps_id})
        return self._require_done(data, "Virtual server suspend unsuccessful", vpsid=vps_id)

    def unsuspend_virtual_server(self, vps_id: Any) -> Dict[str, Any]:
        data = self.api_call("vs", {"unsuspend": vps_id})
        return self._require_done(data, "Virtual server unsuspend unsuccessful", vpsid=vps_id)

    def delete_virtual_server(self, vps_id: Any) -> Dict[str, Any]:
        data = self.api_call("vs", {"delete": vps_id})
        return self._require_done(data, "Virtual server delete unsuccessful", vpsid=vps_id)

    def get_vnc_info(self, vps_id: Any) -> Dict[str, Any]:
        data = self.api_call("vnc", {"novnc": vps_id})
        info = data.get("info")
        if not isinstance(info, dict) or not info.get("port"):
            raise upstream_error("Unable to obtain VNC details", {
                "vpsid": vps_id,
                "response_data": condense(data),
            })
        return info

    def get_sso_url(self, vps_id: Any) -> str:
        data = self.api_call("sso", {"svs": vps_id})

        if not data.get("sid") or not data.get("token_key"):
            raise upstream_error("Unable to obtain SSO url", {"vpsid": vps_id})

        return (
            f"https://{self.config.hostname}:{SSO_PORT}/{data['token_key']}/"
            f"?as={data['sid']}&svs={vps_id}"
        )

    # =========================================
    # CATALOGS
    # =========================================

    def _pages(self, act: str, key: str, post: Dict[str, Any]) -> Iterator[List[Dict[str, Any]]]:
        def fetch_page(page: int, page_size: int) -> List[Dict[str, Any]]:
            data = self.api_call(act, {"page": page, "reslen": page_size}, post)
            return entries_from(data.get(key))

        return paginate(fetch_page, PAGE_SIZE)

    def get_plan(self, plan: Any, virtualization_type: Optional[str] = None, or_fail: bool = True):
        """
        Find a plan by id or name, optionally limited to one virtualization type.

        Returns:
            The plan record, or NOT_FOUND when ``or_fail`` is false
        """
        if plan is None or str(plan).strip() == "":
            raise validation_failed("Size parameter is required")

        post: Dict[str, Any] = {}
        if not is_numeric(plan):
            post["planname"] = plan
        if virtualization_type:
            post["ptype"] = virtualization_type

        what = "Plan"
        if virtualization_type:
            what = f"{virtualization_type.capitalize()} plan"

        return resolve(
            plan,
            self._pages("plans", "plans", post),
            [by_id("plid"), by_name("plan_name")],
            or_fail=or_fail,
            what=what,
            filters={"virt": virtualization_type} if virtualization_type else None,
        )

    def get_server_group(self, group: Any, or_fail: bool = True):
        post = {} if is_numeric(group) else {"sg_name": group}
        return resolve(
            group,
            self._pages("servergroups", "servergroups", post),
            [by_id("sgid"), by_name("sg_name")],
            or_fail=or_fail,
            what="Server group",
        )

    def get_server(self, server: Any, by_location: bool = False, or_fail: bool = True):
        """
        Find a host server by id, name or (with ``by_location``) rendered location.
        """
        if by_location:
            post: Dict[str, Any] = {}
            matchers = [by_name("location", transform=location_to_string)]
            filters = {"location": server}
        else:
            post = {} if is_numeric(server) else {"servername": server}
            matchers = [by_id("serid"), by_name("server_name")]
            filters = None

        return resolve(
            server,
            self._pages("servers", "servs", post),
            matchers,
            or_fail=or_fail,
            what="Host server",
            filters=filters,
        )

    def list_os_templates(self) -> List[Dict[str, Any]]:
        def load() -> List[Dict[str, Any]]:
            data = self.api_call("ostemplates")
            templates = data.get("ostemplates") or {}
            if not templates:
                raise upstream_error("No OS templates were returned by the provider", {
                    "response_data": condense(data),
                })
            if isinstance(templates, dict):
                return [{**os, "osid": osid} for osid, os in templates.items()]
            return list(templates)

        return self.cache.get_or_load(f"virtualizor:{self.config.hostname}:ostemplates", CATALOG_TTL, load)

    def get_os_template(self, image: Any) -> Dict[str, Any]:
        return resolve_in(
            image,
            self.list_os_templates(),
            [by_id("osid"), by_name("name")],
            what="OS template",
        )


@register_provider
class VirtualizorProvider(ServerProvider):
    """
    Virtualizor provider adapter.

    Features:
    - Plan, OS template, server group and host server lookup by id or name
    - SSO, cPanel/WHM and VNC connections
    - Suspend/unsuspend
    - No recovery ISO support
    """

    PROVIDER_ID = "virtualizor"
    PROVIDER_NAME = "Virtualizor"
    PROVIDER_WEBSITE = "https://www.virtualizor.com"
    PROVIDER_DESCRIPTION = (
        "Deploy and manage Virtualizor virtual servers using KVM, Xen, OpenVZ, "
        "Proxmox, Virtuozzo, LXC and more"
    )
    CAPABILITIES = Operation.ALL - {Operation.ATTACH_RECOVERY_ISO, Operation.DETACH_RECOVERY_ISO}

    def __init__(
        self,
        config: VirtualizorConfig,
        logger: Optional[logging.Logger] = None,
        cache: Optional[CatalogCache] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.config = config
        self.api = VirtualizorApi(config, logger=logger, cache=cache, client=client)

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
        virtualization_type = (
            params.virtualization_type
            or self.config.default_virtualization_type
            or DEFAULT_VIRTUALIZATION_TYPE
        )

        plan = self.api.get_plan(params.size, virtualization_type)
        template = self.api.get_os_template(params.image)

        server_group: Dict[str, Any] = {}
        server: Dict[str, Any] = {}
        if self.config.location_type == LOCATION_TYPE_SERVER_GROUP:
            server_group = self.api.get_server_group(params.location)
        elif self.config.location_type == LOCATION_TYPE_SERVER:
            server = self.api.get_server(params.location)
        else:
            server = self.api.get_server(params.location, by_location=True)

        data = self.api.create_virtual_server(
            plan.get("virt") or virtualization_type,
            plan["plid"],
            template["osid"],
            server_group.get("sgid"),
            server.get("serid"),
            params.label,
            params.email,
            params.root_password,
        )

        logger.info("Virtualizor server %s creating", data["vpsid"], extra={
            "provider": self.PROVIDER_ID,
            "instance_id": str(data["vpsid"]),
        })

        info = self._server_info(data["vpsid"])
        return replace(info, state=LifecycleState.CREATING), "Virtual server creating"

    @lifecycle_operation(Operation.GET_INFO)
    def get_info(self, params: ServerIdentifierParams):
        return self._server_info(params.instance_id), "Server info obtained"

    @lifecycle_operation(Operation.GET_CONNECTION)
    def get_connection(self, params: GetConnectionParams):
        application = params.application

        if application in CONTROL_PANEL_LOGIN_PORTS:
            info = self._server_info(params.instance_id)
            port = CONTROL_PANEL_LOGIN_PORTS[application]
            connection = FormPostConnection(
                url=f"https://{info.hostname}:{port}/login/",
                params={
                    "user": params.application_params.get("username", ""),
                    "pass": params.application_params.get("password", ""),
                },
            )
            return connection, "Control panel URL generated"

        if application == "vnc":
            vnc = self.api.get_vnc_info(params.instance_id)
            connection = VNCConnection(
                host=str(vnc.get("ip") or self.config.hostname),
                port=int_or_zero(vnc.get("port")),
                password=optional_text(vnc.get("password")),
            )
            return connection, "VNC connection details obtained"

        if application:
            raise ProviderError(ClassifiedError(
                ErrorKind.UNSUPPORTED,
                "Unsupported application",
                {"application": application},
            ), self.PROVIDER_ID)

        url = self.api.get_sso_url(params.instance_id)
        return RedirectConnection(url=url), "Control panel URL generated"

    @lifecycle_operation(Operation.CHANGE_ROOT_PASSWORD)
    def change_root_password(self, params: ChangeRootPasswordParams):
        data = self.api.change_root_password(params.instance_id, params.root_password)
        info = self._server_info(params.instance_id)
        return info, _done_message(data, "Root password changed")

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

        virtualization_type = None if info.virtualization_type == UNKNOWN else info.virtualization_type
        plan = self.api.get_plan(params.size, virtualization_type)
        data = self.api.change_virtual_server_plan(params.instance_id, plan["plid"])

        return (
            replace(info, size=text_or_unknown(plan.get("plan_name"))),
            _done_message(data, "Virtual server plan updated"),
        )

    @lifecycle_operation(Operation.REINSTALL)
    def reinstall(self, params: ReinstallParams):
        all_info = self.api.get_all_virtual_server_info(params.instance_id)
        info = self._to_server_info(all_info)

        template = self.api.get_os_template(params.image)
        data = self.api.rebuild_virtual_server(
            params.instance_id,
            template["osid"],
            all_info["vps"].get("serid"),
        )

        return (
            replace(info, image=text_or_unknown(template.get("name")), state=LifecycleState.REBUILDING),
            _done_message(data, "Virtual server reinstalling"),
        )

    @lifecycle_operation(Operation.REBOOT)
    def reboot(self, params: ServerIdentifierParams):
        info = self._server_info(params.instance_id)
        data = self.api.run_virtual_server_action(params.instance_id, "restart")
        return replace(info, state=LifecycleState.RESTARTING), _done_message(data, "Virtual server restarting")

    @lifecycle_operation(Operation.SHUTDOWN)
    def shutdown(self, params: ServerIdentifierParams):
        info = self._server_info(params.instance_id)

        if info.state == LifecycleState.OFF:
            return info, "Virtual server already off"

        data = self.api.run_virtual_server_action(params.instance_id, "stop")
        return replace(info, state=LifecycleState.STOPPING), _done_message(data, "Virtual server stopping")

    @lifecycle_operation(Operation.POWER_ON)
    def power_on(self, params: ServerIdentifierParams):
        info = self._server_info(params.instance_id)

        if info.state == LifecycleState.RUNNING:
            return info, "Virtual server already on"

        data = self.api.run_virtual_server_action(params.instance_id, "start")
        return replace(info, state=LifecycleState.STARTING), _done_message(data, "Virtual server starting")

    @lifecycle_operation(Operation.SUSPEND)
    def suspend(self, params: ServerIdentifierParams):
        info = self._server_info(params.instance_id)

        if info.suspended:
            return info, "Virtual server already suspended"

        self.api.suspend_virtual_server(params.instance_id)
        return replace(info, suspended=True), "Virtual server suspended"

    @lifecycle_operation(Operation.UNSUSPEND)
    def unsuspend(self, params: ServerIdentifierParams):
        info = self._server_info(params.instance_id)

        if not info.suspended:
            return info, "Virtual server not suspended"

        self.api.unsuspend_virtual_server(params.instance_id)
        return replace(info, suspended=False), "Virtual server unsuspended"

    @lifecycle_operation(Operation.ATTACH_RECOVERY_ISO)
    def attach_recovery_iso(self, params: ServerIdentifierParams):
        raise unsupported(Operation.ATTACH_RECOVERY_ISO, self.PROVIDER_ID)

    @lifecycle_operation(Operation.DETACH_RECOVERY_ISO)
    def detach_recovery_iso(self, params: ServerIdentifierParams):
        raise unsupported(Operation.DETACH_RECOVERY_ISO, self.PROVIDER_ID)

    @lifecycle_operation(Operation.TERMINATE)
    def terminate(self, params: ServerIdentifierParams):
        self.api.delete_virtual_server(params.instance_id)
        message = "Virtual server deleted"
        return Acknowledgement(params.instance_id, message), message

    # =========================================
    # NORMALIZATION
    # =========================================

    def _server_info(self, vps_id: Any) -> ServerInfo:
        return self._to_server_info(self.api.get_all_virtual_server_info(vps_id))

    def _to_server_info(self, all_info: Dict[str, Any]) -> ServerInfo:
        """Build ServerInfo from an ``editvs`` response."""
        vps = all_info["vps"]
        plan_id = vps.get("plid")
        server_id = vps.get("serid")

        plan = _keyed(all_info.get("plans"), plan_id)
        if plan is None:
            plan = self.api.get_plan(plan_id, or_fail=False) if is_numeric(plan_id) else NOT_FOUND

        server = _keyed(all_info.get("servers"), server_id)
        if server is None:
            server = self.api.get_server(server_id, or_fail=False) if is_numeric(server_id) else NOT_FOUND

        server_name = optional_text(server.get("server_name")) if server else None
        if self.config.location_type == LOCATION_TYPE_SERVER:
            location = text_or_unknown(server_name)
        else:
            location = location_to_string(server.get("location") if server else None)

        hostname = text_or_unknown(vps.get("hostname"))
        stats = vps.get("stats") if isinstance(vps.get("stats"), dict) else {}

        return ServerInfo(
            instance_id=str(vps.get("vpsid")),
            state=map_state(stats.get("status"), VIRTUALIZOR_STATUS_MAP),
            suspended=int_or_zero(vps.get("suspended")) != 0,
            label=f"{hostname} [{text_or_unknown(vps.get('vps_name'))}]",
            hostname=hostname,
            ip_address=first_or_unknown(vps.get("ips")),
            image=text_or_unknown(vps.get("os_name")),
            size=text_or_unknown(plan.get("plan_name")) if plan else "Custom",
            location=location,
            node=server_name,
            virtualization_type=text_or_unknown(vps.get("virt")),
            memory_mb=int_or_zero(vps.get("ram")),
            cpu_cores=int_or_zero(vps.get("cores")),
            disk_mb=int_or_zero(vps.get("space")) * 1024,
        )


def _keyed(collection: Any, key: Any) -> Optional[Dict[str, Any]]:
    """Look up a record in a dict keyed by (string or int) id."""
    if not isinstance(collection, dict) or key is None:
        return None
    return collection.get(str(key)) or collection.get(key)


def _done_message(data: Dict[str, Any], default: str) -> str:
    message = data.get("done_msg")
    if not message and isinstance(data.get("done"), dict):
        message = data["done"].get("msg")
    return str(message) if message else default

