"""
VPS Control Test Fixtures
=========================

Shared fixtures for all test modules.

Vendor APIs are faked with httpx.MockTransport: each fixture router maps a
request to a canned response and records every request it sees.
"""

import json
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import parse_qs

import httpx
import pytest

from vps_control.config import TwentyIConfig, VirtualizorConfig, VultrConfig
from vps_control.providers.cache import CatalogCache


# ============================================
# FAKE VENDOR API
# ============================================

class Router:
    """Route mocked vendor requests to canned responses."""

    def __init__(self, key: Optional[Callable[[httpx.Request], Any]] = None):
        self.key = key or (lambda request: (request.method, request.url.path))
        self.routes: Dict[Any, Any] = {}
        self.requests: List[httpx.Request] = []

    def add(self, key: Any, response: Any = None, status: int = 200):
        """
        Register a response.

        ``response`` may be a JSON-able payload, an httpx.Response or a
        callable taking the request and returning either.
        """
        self.routes[key] = (response, status)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(self.key(request))
        if route is None:
            return httpx.Response(500, text=f"unrouted request {request.method} {request.url}")

        response, status = route
        if callable(response) and not isinstance(response, httpx.Response):
            response = response(request)
        if isinstance(response, httpx.Response):
            return response
        if response is None:
            return httpx.Response(status)
        return httpx.Response(status, json=response)

    def client(self, base_url: str) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self), base_url=base_url)

    def calls(self, key: Any) -> List[httpx.Request]:
        return [r for r in self.requests if self.key(r) == key]


def form_of(request: httpx.Request) -> Dict[str, str]:
    """Decode a form-encoded request body into a flat dict."""
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def json_of(request: httpx.Request) -> Any:
    return json.loads(request.content.decode()) if request.content else None


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def advance(self, seconds: float):
        self.now += seconds

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    """Catalog cache isolated from the process-wide default."""
    return CatalogCache(clock=clock)


# ============================================
# VIRTUALIZOR
# ============================================

VIRTUALIZOR_ALL_INFO = {
    "vps": {
        "vpsid": "101",
        "vps_name": "v1001",
        "hostname": "web1.example.com",
        "plid": "3",
        "serid": "0",
        "os_name": "ubuntu-22.04-x86_64",
        "virt": "kvm",
        "suspended": "0",
        "ips": {"12": "203.0.113.10"},
        "ram": "2048",
        "cores": "2",
        "space": "40",
        "stats": {"status": 1},
    },
    "plans": {"3": {"plid": "3", "plan_name": "kvm-2gb"}},
    "servers": {
        "0": {
            "serid": "0",
            "server_name": "node-lon-1",
            "location": '{"city": "London", "state": "", "country": "GB"}',
        },
    },
}


def virtualizor_info(status: int = 1, suspended: str = "0") -> Dict[str, Any]:
    """A copy of the canned ``editvs`` payload with a different power state."""
    info = json.loads(json.dumps(VIRTUALIZOR_ALL_INFO))
    info["vps"]["stats"]["status"] = status
    info["vps"]["suspended"] = suspended
    return info


@pytest.fixture
def virtualizor_config():
    return VirtualizorConfig(
        hostname="vz.example.com",
        api_key="admin-key",
        api_password="admin-pass",
    )


@pytest.fixture
def virtualizor_router():
    """Virtualizor routes by the ``act`` query parameter."""
    return Router(key=lambda request: request.url.params.get("act"))


@pytest.fixture
def virtualizor(virtualizor_config, virtualizor_router, cache):
    from vps_control.providers.virtualizor import VirtualizorProvider

    provider = VirtualizorProvider(
        virtualizor_config,
        cache=cache,
        client=virtualizor_router.client(virtualizor_config.base_url),
    )
    yield provider
    provider.close()


# ============================================
# VULTR
# ============================================

VULTR_INSTANCE = {
    "id": "cb676a46-66fd-4dfb-b839-443f2e6c0b60",
    "os": "Ubuntu 22.04 LTS x64",
    "os_id": 1743,
    "ram": 1024,
    "disk": 25,
    "vcpu_count": 1,
    "main_ip": "192.0.2.123",
    "region": "ewr",
    "plan": "vc2-1c-1gb",
    "date_created": "2024-01-15T10:00:00+00:00",
    "status": "active",
    "power_status": "running",
    "server_status": "ok",
    "label": "web1",
    "hostname": "web1",
    "default_password": "v3ryS3cret!",
    "kvm": "https://my.vultr.com/subs/vps/novnc/api.php?data=abc",
}

VULTR_REGIONS = [
    {"id": "ewr", "city": "New Jersey", "country": "US", "continent": "North America"},
    {"id": "lhr", "city": "London", "country": "GB", "continent": "Europe"},
]

VULTR_PLANS = [
    {"id": "vc2-1c-1gb", "vcpu_count": 1, "ram": 1024, "disk": 25},
    {"id": "vc2-2c-4gb", "vcpu_count": 2, "ram": 4096, "disk": 80},
]

VULTR_OS = [
    {"id": 1743, "name": "Ubuntu 22.04 LTS x64", "family": "ubuntu"},
    {"id": 2136, "name": "Debian 12 x64 (bookworm)", "family": "debian"},
]

VULTR_RECOVERY_ISO_ID = "0532a75b-14e8-48b8-b27e-1ebcf382a804"

VULTR_PUBLIC_ISOS = [
    {"id": "9f1b6c38-0ad2-4c9b-9fd1-3a5ae2b3a1c1", "name": "Finnix"},
    {"id": VULTR_RECOVERY_ISO_ID, "name": "SystemRescue"},
]


def vultr_listing(key: str, entries: List[Any], next_cursor: str = "") -> Dict[str, Any]:
    return {key: entries, "meta": {"total": len(entries), "links": {"next": next_cursor, "prev": ""}}}


def vultr_instance(**overrides) -> Dict[str, Any]:
    return {"instance": {**VULTR_INSTANCE, **overrides}}


@pytest.fixture
def vultr_config():
    return VultrConfig(api_token="vultr-token")


@pytest.fixture
def vultr_router():
    router = Router()
    router.add(("GET", "/v2/regions"), vultr_listing("regions", VULTR_REGIONS))
    router.add(("GET", "/v2/plans"), vultr_listing("plans", VULTR_PLANS))
    router.add(("GET", "/v2/os"), vultr_listing("os", VULTR_OS))
    router.add(("GET", "/v2/iso-public"), vultr_listing("public_isos", VULTR_PUBLIC_ISOS))
    return router


@pytest.fixture
def vultr(vultr_config, vultr_router, cache):
    from vps_control.providers.vultr import VultrProvider

    provider = VultrProvider(
        vultr_config,
        cache=cache,
        client=vultr_router.client(vultr_config.base_url),
    )
    yield provider
    provider.close()


# ============================================
# 20i
# ============================================

TWENTYI_VPS = {
    "id": 2001,
    "name": "vps2001.example.com",
    "configuration": {
        "RamMb": 4096,
        "CpuCores": 4,
        "OsDiskSizeGb": 80,
        "location": "Gloucester, UK",
    },
    "Status": {
        "PendingAction": False,
        "CurrentAction": "nothing",
        "Domstate": "running",
    },
    "Network": [{"Addresses": [{"IpAddress": "198.51.100.7"}]}],
    "OS": {"DisplayName": "AlmaLinux 9"},
    "SuperPassword": "super-secret",
    "CreatedAt": "2024-02-01T09:30:00Z",
    "UpdatedAt": "2024-02-02T09:30:00Z",
}


def twentyi_vps(domstate: str = "running") -> Dict[str, Any]:
    vps = json.loads(json.dumps(TWENTYI_VPS))
    vps["Status"]["Domstate"] = domstate
    return vps


@pytest.fixture
def twentyi_config():
    return TwentyIConfig(general_api_key="general-key")


@pytest.fixture
def twentyi_router():
    return Router()


@pytest.fixture
def twentyi(twentyi_config, twentyi_router):
    from vps_control.providers.twentyi import TwentyIProvider

    provider = TwentyIProvider(
        twentyi_config,
        client=twentyi_router.client(twentyi_config.base_url),
    )
    yield provider
    provider.close()
