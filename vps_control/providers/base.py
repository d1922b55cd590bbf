"""
VPS Control Provider Interface and Data Model
=============================================

Defines the canonical entities every backend adapter produces and the
lifecycle contract all adapters implement.

Adapters share no base-class state. Common behaviour (resolution,
normalization, error classification) lives in helper modules and is used
by composition.
"""

import functools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Optional, Union

from .errors import (
    ClassifiedError,
    ProviderError,
    classify,
    unsupported,
    validation_failed,
)

logger = logging.getLogger(__name__)


UNKNOWN = "Unknown"


class LifecycleState(Enum):
    """Canonical instance states across all backends."""
    PENDING = "Pending"
    CREATING = "Creating"
    STARTING = "Starting"
    RUNNING = "Running"
    STOPPING = "Stopping"
    OFF = "Off"
    SUSPENDED = "Suspended"
    REBUILDING = "Rebuilding"
    RESTARTING = "Restarting"
    UNKNOWN = "Unknown"


class Operation:
    """Names of the lifecycle operations, used for capability sets."""
    CREATE = "create"
    GET_INFO = "get_info"
    GET_CONNECTION = "get_connection"
    CHANGE_ROOT_PASSWORD = "change_root_password"
    RESIZE = "resize"
    REINSTALL = "reinstall"
    REBOOT = "reboot"
    SHUTDOWN = "shutdown"
    POWER_ON = "power_on"
    SUSPEND = "suspend"
    UNSUSPEND = "unsuspend"
    ATTACH_RECOVERY_ISO = "attach_recovery_iso"
    DETACH_RECOVERY_ISO = "detach_recovery_iso"
    TERMINATE = "terminate"

    ALL = frozenset({
        CREATE, GET_INFO, GET_CONNECTION, CHANGE_ROOT_PASSWORD, RESIZE,
        REINSTALL, REBOOT, SHUTDOWN, POWER_ON, SUSPEND, UNSUSPEND,
        ATTACH_RECOVERY_ISO, DETACH_RECOVERY_ISO, TERMINATE,
    })


# =========================================
# RESULTS
# =========================================

@dataclass(frozen=True)
class ServerInfo:
    """Snapshot of a remote instance. Never cached; re-inspect for fresh data."""
    instance_id: str
    state: LifecycleState
    suspended: bool = False
    label: str = UNKNOWN
    hostname: str = UNKNOWN
    ip_address: str = UNKNOWN
    image: str = UNKNOWN
    size: str = UNKNOWN
    location: str = UNKNOWN
    node: Optional[str] = None
    virtualization_type: str = UNKNOWN
    memory_mb: int = 0
    cpu_cores: int = 0
    disk_mb: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __str__(self) -> str:
        return f"{self.label} ({self.instance_id}): {self.ip_address} [{self.state.value}]"


@dataclass(frozen=True)
class SSHConnection:
    command: str
    password: Optional[str] = None
    expires_at: Optional[datetime] = None
    type: str = field(default="ssh", init=False)


@dataclass(frozen=True)
class VNCConnection:
    host: str
    port: int
    password: Optional[str] = None
    expires_at: Optional[datetime] = None
    type: str = field(default="vnc", init=False)


@dataclass(frozen=True)
class RedirectConnection:
    url: str
    expires_at: Optional[datetime] = None
    type: str = field(default="redirect", init=False)


@dataclass(frozen=True)
class FormPostConnection:
    url: str
    params: Dict[str, Any] = field(default_factory=dict)
    expires_at: Optional[datetime] = None
    type: str = field(default="form_post", init=False)


ConnectionInfo = Union[SSHConnection, VNCConnection, RedirectConnection, FormPostConnection]


@dataclass(frozen=True)
class IsoStatus:
    """ISO mount state of an instance."""
    state: str
    iso_id: Optional[str] = None

    @property
    def mounted(self) -> bool:
        return bool(self.iso_id)


@dataclass(frozen=True)
class Acknowledgement:
    """Result of an irreversible operation with nothing left to describe."""
    instance_id: str
    message: str = ""


@dataclass(frozen=True)
class Outcome:
    """Either a successful value or a ClassifiedError, never both or neither."""
    value: Any = None
    error: Optional[ClassifiedError] = None
    message: str = ""

    def __post_init__(self):
        if (self.value is None) == (self.error is None):
            raise ValueError("Outcome requires exactly one of value or error")

    @classmethod
    def success(cls, value: Any, message: str = "") -> "Outcome":
        return cls(value=value, message=message)

    @classmethod
    def failure(cls, error: ClassifiedError) -> "Outcome":
        return cls(error=error, message=error.message)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        """Return the value, raising ProviderError for a failed outcome."""
        if self.error is not None:
            raise ProviderError(self.error)
        return self.value


# =========================================
# PARAMETERS
# =========================================

def _require(**fields: Any) -> None:
    for name, value in fields.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            raise validation_failed(f"{name} field is required", {"field": name})


@dataclass
class ServerIdentifierParams:
    instance_id: str

    def __post_init__(self):
        _require(instance_id=self.instance_id)
        self.instance_id = str(self.instance_id).strip()


@dataclass
class CreateParams:
    """Parameters for creating a new server.

    ``size``, ``image`` and ``location`` may each be a vendor ID or a
    human-readable name.
    """
    label: str
    size: str
    image: str
    location: str
    email: Optional[str] = None
    root_password: Optional[str] = None
    virtualization_type: Optional[str] = None

    def __post_init__(self):
        _require(label=self.label, size=self.size, image=self.image)


@dataclass
class GetConnectionParams:
    instance_id: str
    application: Optional[str] = None
    application_params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        _require(instance_id=self.instance_id)
        self.instance_id = str(self.instance_id).strip()


@dataclass
class ResizeParams:
    instance_id: str
    size: str
    resize_running: bool = False

    def __post_init__(self):
        _require(instance_id=self.instance_id, size=self.size)
        self.instance_id = str(self.instance_id).strip()


@dataclass
class ReinstallParams:
    instance_id: str
    image: str

    def __post_init__(self):
        _require(instance_id=self.instance_id, image=self.image)
        self.instance_id = str(self.instance_id).strip()


@dataclass
class ChangeRootPasswordParams:
    instance_id: str
    root_password: str

    def __post_init__(self):
        _require(instance_id=self.instance_id, root_password=self.root_password)
        self.instance_id = str(self.instance_id).strip()


# =========================================
# CONTRACT
# =========================================

def lifecycle_operation(operation: str) -> Callable:
    """Turn a provider method into one that always returns an Outcome.

    The wrapped method returns either an Outcome or ``(value, message)``.
    Operations missing from the provider's CAPABILITIES fail as Unsupported
    before the method body runs, so no remote call is attempted.
    """
    def decorator(method: Callable) -> Callable:
        @functools.wraps(method)
        def wrapper(self, params, *args, **kwargs) -> Outcome:
            provider_id = getattr(self, "PROVIDER_ID", "")
            if operation not in self.CAPABILITIES:
                return Outcome.failure(unsupported(operation, provider_id).error)
            try:
                result = method(self, params, *args, **kwargs)
            except ProviderError as e:
                logger.info(
                    "%s %s failed: %s",
                    provider_id,
                    operation,
                    e.error,
                    extra={"provider": provider_id, "operation": operation, "result": e.error.data},
                )
                return Outcome.failure(e.error)
            except Exception as e:
                logger.exception(
                    "%s %s raised an unexpected error",
                    provider_id,
                    operation,
                    extra={"provider": provider_id, "operation": operation},
                )
                return Outcome.failure(classify(e).merged({"operation": operation}))
            if isinstance(result, Outcome):
                return result
            value, message = result
            return Outcome.success(value, message)
        wrapper.operation = operation
        return wrapper
    return decorator


class ServerProvider(ABC):
    """
    Lifecycle contract every backend adapter implements.

    Each operation takes a parameter object and returns an Outcome holding
    a ServerInfo, a ConnectionInfo variant, an Acknowledgement or a
    ClassifiedError. Operations never wait for the remote side effect to
    finish; polling via get_info is the caller's job.
    """

    PROVIDER_ID: str = "base"
    PROVIDER_NAME: str = "Base Provider"
    PROVIDER_WEBSITE: str = ""
    PROVIDER_DESCRIPTION: str = ""
    CAPABILITIES: FrozenSet[str] = frozenset()

    @abstractmethod
    def create(self, params: CreateParams) -> Outcome:
        """Resolve plan, image and placement, then submit creation."""

    @abstractmethod
    def get_info(self, params: ServerIdentifierParams) -> Outcome:
        """Inspect an instance. NotFound if it no longer exists."""

    @abstractmethod
    def get_connection(self, params: GetConnectionParams) -> Outcome:
        """Return exactly one ConnectionInfo variant."""

    @abstractmethod
    def change_root_password(self, params: ChangeRootPasswordParams) -> Outcome:
        pass

    @abstractmethod
    def resize(self, params: ResizeParams) -> Outcome:
        pass

    @abstractmethod
    def reinstall(self, params: ReinstallParams) -> Outcome:
        """Destructive rebuild; returns in Rebuilding without waiting."""

    @abstractmethod
    def reboot(self, params: ServerIdentifierParams) -> Outcome:
        pass

    @abstractmethod
    def shutdown(self, params: ServerIdentifierParams) -> Outcome:
        pass

    @abstractmethod
    def power_on(self, params: ServerIdentifierParams) -> Outcome:
        pass

    @abstractmethod
    def suspend(self, params: ServerIdentifierParams) -> Outcome:
        pass

    @abstractmethod
    def unsuspend(self, params: ServerIdentifierParams) -> Outcome:
        pass

    @abstractmethod
    def attach_recovery_iso(self, params: ServerIdentifierParams) -> Outcome:
        pass

    @abstractmethod
    def detach_recovery_iso(self, params: ServerIdentifierParams) -> Outcome:
        pass

    @abstractmethod
    def terminate(self, params: ServerIdentifierParams) -> Outcome:
        """Irreversibly delete an instance; returns an Acknowledgement."""

    @classmethod
    def about(cls) -> Dict[str, Any]:
        return {
            "id": cls.PROVIDER_ID,
            "name": cls.PROVIDER_NAME,
            "website": cls.PROVIDER_WEBSITE,
            "description": cls.PROVIDER_DESCRIPTION,
            "capabilities": sorted(cls.CAPABILITIES),
        }

    def supports(self, operation: str) -> bool:
        return operation in self.CAPABILITIES

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} ({self.PROVIDER_ID})>"
