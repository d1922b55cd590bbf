"""
Tests for the 20i Provider
==========================
"""

import base64

import pytest

from vps_control.providers.base import (
    ChangeRootPasswordParams,
    CreateParams,
    GetConnectionParams,
    LifecycleState,
    ReinstallParams,
    ResizeParams,
    ServerIdentifierParams,
    SSHConnection,
)
from vps_control.providers.errors import ErrorKind, ProviderError
from vps_control.providers.twentyi import size_type_name

from conftest import TWENTYI_VPS, json_of, twentyi_vps

VPS_PATH = "/vps/2001"


def params():
    return ServerIdentifierParams("2001")


class TestSizeTypeName:

    @pytest.mark.parametrize("size,expected", [
        ("4", "vps-c"),
        (4, "vps-c"),
        ("vps-c", "vps-c"),
        ("20", "vps-i"),
    ])
    def test_resolves(self, size, expected):
        assert size_type_name(size) == expected

    def test_invalid(self):
        with pytest.raises(ProviderError) as exc_info:
            size_type_name("3")
        assert exc_info.value.kind == ErrorKind.NOT_FOUND
        assert exc_info.value.error.message == "Server size not found"


class TestApi:

    def test_bearer_is_encoded_key(self, twentyi, twentyi_router):
        twentyi_router.add(("GET", VPS_PATH), twentyi_vps())
        twentyi.get_info(params())

        expected = base64.b64encode(b"general-key").decode()
        assert twentyi_router.requests[0].headers["Authorization"] == f"Bearer {expected}"

    def test_unauthorized(self, twentyi, twentyi_router):
        twentyi_router.add(("GET", VPS_PATH), {"error": "Invalid token"}, status=401)
        outcome = twentyi.get_info(params())
        assert outcome.error.kind == ErrorKind.UNAUTHORIZED


class TestGetInfo:

    def test_normalized(self, twentyi, twentyi_router):
        twentyi_router.add(("GET", VPS_PATH), twentyi_vps())
        info = twentyi.get_info(params()).value

        assert info.instance_id == "2001"
        assert info.state == LifecycleState.RUNNING
        assert info.label == "vps2001.example.com"
        assert info.ip_address == "198.51.100.7"
        assert info.image == "AlmaLinux 9"
        assert info.location == "Gloucester, UK"
        assert info.memory_mb == 4096
        assert info.cpu_cores == 4
        assert info.disk_mb == 80 * 1024
        assert info.created_at.month == 2

    @pytest.mark.parametrize("domstate,state", [
        ("shut off", LifecycleState.OFF),
        ("paused", LifecycleState.OFF),
        ("crashed", LifecycleState.UNKNOWN),
    ])
    def test_domstate(self, twentyi, twentyi_router, domstate, state):
        twentyi_router.add(("GET", VPS_PATH), twentyi_vps(domstate))
        assert twentyi.get_info(params()).value.state == state

    def test_pending_action(self, twentyi, twentyi_router):
        """A queued action the host has not picked up yet reads as Pending."""
        vps = twentyi_vps()
        vps["Status"]["PendingAction"] = "create"
        twentyi_router.add(("GET", VPS_PATH), vps)

        assert twentyi.get_info(params()).value.state == LifecycleState.PENDING

    def test_missing_network(self, twentyi, twentyi_router):
        vps = twentyi_vps()
        vps["Network"] = []
        twentyi_router.add(("GET", VPS_PATH), vps)
        assert twentyi.get_info(params()).value.ip_address == "Unknown"


class TestCreate:

    def test_create(self, twentyi, twentyi_router):
        twentyi_router.add(("POST", "/reseller/*/addVPS"), {"result": 2001})
        twentyi_router.add(("GET", VPS_PATH), twentyi_vps())

        outcome = twentyi.create(CreateParams(label="web1", size="4", image="AlmaLinux 9", location="UK"))

        assert outcome.ok, outcome.error
        assert outcome.value.instance_id == "2001"
        assert outcome.value.state == LifecycleState.CREATING
        body = json_of(twentyi_router.calls(("POST", "/reseller/*/addVPS"))[0])
        assert body["type"] == "vps-c"
        assert body["configuration"] == {"Name": "web1"}
        assert body["options"] == {"os": "AlmaLinux 9"}

    def test_invalid_size_sends_nothing(self, twentyi, twentyi_router):
        outcome = twentyi.create(CreateParams(label="web1", size="3", image="AlmaLinux 9", location="UK"))
        assert outcome.error.kind == ErrorKind.NOT_FOUND
        assert twentyi_router.requests == []

    def test_no_id_returned(self, twentyi, twentyi_router):
        twentyi_router.add(("POST", "/reseller/*/addVPS"), {"result": None})
        outcome = twentyi.create(CreateParams(label="web1", size="vps-a", image="AlmaLinux 9", location="UK"))
        assert outcome.error.kind == ErrorKind.UPSTREAM_ERROR


class TestActions:

    def test_suspend(self, twentyi, twentyi_router):
        twentyi_router.add(("GET", VPS_PATH), twentyi_vps())
        twentyi_router.add(("POST", f"{VPS_PATH}/userStatus"), {"result": True})

        outcome = twentyi.suspend(params())

        assert outcome.value.suspended is True
        body = json_of(twentyi_router.calls(("POST", f"{VPS_PATH}/userStatus"))[0])
        assert body == {"includeRepeated": True, "subservices": {"default": False}}

    def test_unsuspend_always_calls(self, twentyi, twentyi_router):
        twentyi_router.add(("GET", VPS_PATH), twentyi_vps())
        twentyi_router.add(("POST", f"{VPS_PATH}/userStatus"), {"result": True})

        twentyi.unsuspend(params())
        twentyi.unsuspend(params())

        calls = twentyi_router.calls(("POST", f"{VPS_PATH}/userStatus"))
        assert len(calls) == 2
        assert json_of(calls[0])["subservices"] == {"default": True}

    def test_shutdown_when_off(self, twentyi, twentyi_router):
        twentyi_router.add(("GET", VPS_PATH), twentyi_vps("shut off"))
        outcome = twentyi.shutdown(params())
        assert outcome.ok
        assert outcome.value.state == LifecycleState.OFF
        assert twentyi_router.calls(("POST", f"{VPS_PATH}/stop")) == []

    def test_power_on(self, twentyi, twentyi_router):
        twentyi_router.add(("GET", VPS_PATH), twentyi_vps("shut off"))
        twentyi_router.add(("POST", f"{VPS_PATH}/start"), {"result": True})
        assert twentyi.power_on(params()).value.state == LifecycleState.STARTING

    def test_reboot(self, twentyi, twentyi_router):
        twentyi_router.add(("GET", VPS_PATH), twentyi_vps())
        twentyi_router.add(("POST", f"{VPS_PATH}/reboot"), {"result": True})
        assert twentyi.reboot(params()).value.state == LifecycleState.RESTARTING

    def test_reinstall(self, twentyi, twentyi_router):
        twentyi_router.add(("POST", f"{VPS_PATH}/rebuild"), {"result": True})
        twentyi_router.add(("GET", VPS_PATH), twentyi_vps())

        outcome = twentyi.reinstall(ReinstallParams(instance_id="2001", image="debian-12"))

        assert outcome.value.state == LifecycleState.REBUILDING
        body = json_of(twentyi_router.calls(("POST", f"{VPS_PATH}/rebuild"))[0])
        assert body["VpsOsId"] == "debian-12"

    def test_change_root_password(self, twentyi, twentyi_router):
        twentyi_router.add(("POST", f"{VPS_PATH}/changePassword"), {"result": True})
        twentyi_router.add(("GET", VPS_PATH), twentyi_vps())

        outcome = twentyi.change_root_password(ChangeRootPasswordParams(instance_id="2001", root_password="n3w-Pass"))

        assert outcome.ok, outcome.error
        body = json_of(twentyi_router.calls(("POST", f"{VPS_PATH}/changePassword"))[0])
        assert body == {"password": "n3w-Pass"}


class TestGetConnection:

    def test_ssh(self, twentyi, twentyi_router):
        twentyi_router.add(("GET", VPS_PATH), twentyi_vps())
        outcome = twentyi.get_connection(GetConnectionParams(instance_id="2001"))
        assert outcome.value == SSHConnection(command="ssh root@198.51.100.7", password=TWENTYI_VPS["SuperPassword"])

    def test_other_application(self, twentyi, twentyi_router):
        outcome = twentyi.get_connection(GetConnectionParams(instance_id="2001", application="vnc"))
        assert outcome.error.kind == ErrorKind.UNSUPPORTED
        assert twentyi_router.requests == []


class TestUnsupported:

    def test_resize(self, twentyi, twentyi_router):
        outcome = twentyi.resize(ResizeParams(instance_id="2001", size="vps-d"))
        assert outcome.error.kind == ErrorKind.UNSUPPORTED
        assert twentyi_router.requests == []

    @pytest.mark.parametrize("operation", ["terminate", "attach_recovery_iso", "detach_recovery_iso"])
    def test_without_requests(self, twentyi, twentyi_router, operation):
        outcome = getattr(twentyi, operation)(params())
        assert outcome.error.kind == ErrorKind.UNSUPPORTED
        assert twentyi_router.requests == []
