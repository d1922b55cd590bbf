"""
VPS Control Example Provider
============================

Demonstration backend returning canned data. Useful for wiring up callers
without credentials for a real vendor; only get_info is implemented.
"""

import logging
from typing import Any, Optional

from ..config import ExampleConfig
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
    lifecycle_operation,
)
from .errors import unsupported
from .registry import register_provider


@register_provider
class ExampleProvider(ServerProvider):
    """Canned-data provider for demonstration purposes."""

    PROVIDER_ID = "example"
    PROVIDER_NAME = "Example Provider"
    PROVIDER_WEBSITE = "https://example.com"
    PROVIDER_DESCRIPTION = "Example provider for demonstration purposes"
    CAPABILITIES = frozenset({Operation.GET_INFO})

    def __init__(self, config: Optional[ExampleConfig] = None,
                 logger: Optional[logging.Logger] = None, **kwargs: Any):
        self.config = config or ExampleConfig()

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    @lifecycle_operation(Operation.GET_INFO)
    def get_info(self, params: ServerIdentifierParams):
        info = ServerInfo(
            instance_id=params.instance_id,
            state=LifecycleState.RUNNING,
            label="Example Server",
            hostname="server.example.com",
            ip_address="123.123.123.123",
            image="Ubuntu 20.04",
            size="large",
            location="London",
        )
        return info, "Server info obtained"

    @lifecycle_operation(Operation.CREATE)
    def create(self, params: CreateParams):
        raise unsupported(Operation.CREATE, self.PROVIDER_ID)

    @lifecycle_operation(Operation.GET_CONNECTION)
    def get_connection(self, params: GetConnectionParams):
        raise unsupported(Operation.GET_CONNECTION, self.PROVIDER_ID)

    @lifecycle_operation(Operation.CHANGE_ROOT_PASSWORD)
    def change_root_password(self, params: ChangeRootPasswordParams):
        raise unsupported(Operation.CHANGE_ROOT_PASSWORD, self.PROVIDER_ID)

    @lifecycle_operation(Operation.RESIZE)
    def resize(self, params: ResizeParams):
        raise unsupported(Operation.RESIZE, self.PROVIDER_ID)

    @lifecycle_operation(Operation.REINSTALL)
    def reinstall(self, params: ReinstallParams):
        raise unsupported(Operation.REINSTALL, self.PROVIDER_ID)

    @lifecycle_operation(Operation.REBOOT)
    def reboot(self, params: ServerIdentifierParams):
        raise unsupported(Operation.REBOOT, self.PROVIDER_ID)

    @lifecycle_operation(Operation.SHUTDOWN)
    def shutdown(self, params: ServerIdentifierParams):
        raise unsupported(Operation.SHUTDOWN, self.PROVIDER_ID)

    @lifecycle_operation(Operation.POWER_ON)
    def power_on(self, params: ServerIdentifierParams):
        raise unsupported(Operation.POWER_ON, self.PROVIDER_ID)

    @lifecycle_operation(Operation.SUSPEND)
    def suspend(self, params: ServerIdentifierParams):
        raise unsupported(Operation.SUSPEND, self.PROVIDER_ID)

    @lifecycle_operation(Operation.UNSUSPEND)
    def unsuspend(self, params: ServerIdentifierParams):
        raise unsupported(Operation.UNSUSPEND, self.PROVIDER_ID)

    @lifecycle_operation(Operation.ATTACH_RECOVERY_ISO)
    def attach_recovery_iso(self, params: ServerIdentifierParams):
        raise unsupported(Operation.ATTACH_RECOVERY_ISO, self.PROVIDER_ID)

    @lifecycle_operation(Operation.DETACH_RECOVERY_ISO)
    def detach_recovery_iso(self, params: ServerIdentifierParams):
        raise unsupported(Operation.DETACH_RECOVERY_ISO, self.PROVIDER_ID)

    @lifecycle_operation(Operation.TERMINATE)
    def terminate(self, params: ServerIdentifierParams):
        raise unsupported(Operation.TERMINATE, self.PROVIDER_ID)
