"""
VPS Control Configuration
=========================

Per-backend credentials and behaviour flags.
Reads from environment variables with sensible defaults.

A configuration object is read once when an adapter is built and is not
modified afterwards.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from .logging_config import configure_logging


LOCATION_TYPE_SERVER_GROUP = "server_group"
LOCATION_TYPE_SERVER = "server"
LOCATION_TYPE_LOCATION = "location"

LOCATION_TYPES = (LOCATION_TYPE_SERVER_GROUP, LOCATION_TYPE_SERVER, LOCATION_TYPE_LOCATION)


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class VirtualizorConfig:
    """Virtualizor admin API access."""
    hostname: str = ""
    api_key: str = ""
    api_password: str = ""
    port: int = 4085
    ignore_ssl_errors: bool = True
    location_type: str = LOCATION_TYPE_SERVER_GROUP
    default_virtualization_type: Optional[str] = None
    resize_requires_stop: bool = True
    connect_timeout: float = 10.0
    timeout: float = 60.0  # this API is slow

    def __post_init__(self):
        if self.location_type not in LOCATION_TYPES:
            raise ValueError(
                f"location_type must be one of {', '.join(LOCATION_TYPES)}, got {self.location_type!r}"
            )

    @property
    def is_configured(self) -> bool:
        return bool(self.hostname and self.api_key and self.api_password)

    @property
    def base_url(self) -> str:
        return f"https://{self.hostname}:{self.port or 4085}/"

    @classmethod
    def from_env(cls) -> "VirtualizorConfig":
        return cls(
            hostname=os.environ.get("VIRTUALIZOR_HOSTNAME", ""),
            api_key=os.environ.get("VIRTUALIZOR_API_KEY", ""),
            api_password=os.environ.get("VIRTUALIZOR_API_PASSWORD", ""),
            port=int(os.environ.get("VIRTUALIZOR_PORT", "4085") or 4085),
            ignore_ssl_errors=_env_bool("VIRTUALIZOR_IGNORE_SSL_ERRORS", True),
            location_type=os.environ.get("VIRTUALIZOR_LOCATION_TYPE", LOCATION_TYPE_SERVER_GROUP),
            default_virtualization_type=os.environ.get("VIRTUALIZOR_DEFAULT_VIRT") or None,
            resize_requires_stop=_env_bool("VIRTUALIZOR_RESIZE_REQUIRES_STOP", True),
        )


@dataclass(frozen=True)
class VultrConfig:
    api_token: str = ""
    base_url: str = "https://api.vultr.com/v2/"
    plan_type: str = "vc2"
    recovery_iso_name: str = "SystemRescue"
    resize_requires_stop: bool = False
    connect_timeout: float = 10.0
    timeout: float = 60.0

    @property
    def is_configured(self) -> bool:
        return bool(self.api_token)

    @classmethod
    def from_env(cls) -> "VultrConfig":
        return cls(
            api_token=os.environ.get("VULTR_API_TOKEN", ""),
            base_url=os.environ.get("VULTR_API_URL", "https://api.vultr.com/v2/"),
            resize_requires_stop=_env_bool("VULTR_RESIZE_REQUIRES_STOP", False),
        )


@dataclass(frozen=True)
class TwentyIConfig:
    general_api_key: str = ""
    base_url: str = "https://api.20i.com"
    connect_timeout: float = 10.0
    timeout: float = 60.0  # some actions really do take this long

    @property
    def is_configured(self) -> bool:
        return bool(self.general_api_key)

    @classmethod
    def from_env(cls) -> "TwentyIConfig":
        return cls(
            general_api_key=os.environ.get("TWENTYI_GENERAL_API_KEY", ""),
            base_url=os.environ.get("TWENTYI_API_URL", "https://api.20i.com"),
        )


@dataclass(frozen=True)
class ExampleConfig:
    api_token: str = ""

    @property
    def is_configured(self) -> bool:
        return True


@dataclass
class ServersConfig:
    """Master configuration for all server backends."""

    virtualizor: VirtualizorConfig = field(default_factory=VirtualizorConfig)
    vultr: VultrConfig = field(default_factory=VultrConfig)
    twentyi: TwentyIConfig = field(default_factory=TwentyIConfig)

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> "ServersConfig":
        """Load configuration from environment variables."""
        return cls(
            virtualizor=VirtualizorConfig.from_env(),
            vultr=VultrConfig.from_env(),
            twentyi=TwentyIConfig.from_env(),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            log_format=os.environ.get("LOG_FORMAT", "json"),
        )

    def apply_logging(self) -> None:
        """Install the root log handler using log_level and log_format."""
        configure_logging(self.log_level, self.log_format)

    def available_providers(self) -> List[str]:
        providers = []
        if self.virtualizor.is_configured:
            providers.append("virtualizor")
        if self.vultr.is_configured:
            providers.append("vultr")
        if self.twentyi.is_configured:
            providers.append("twentyi")
        return providers

    def for_provider(self, provider_id: str):
        """Return the sub-config for a provider id, or None."""
        return {
            "virtualizor": self.virtualizor,
            "vultr": self.vultr,
            "twentyi": self.twentyi,
            "example": ExampleConfig(),
        }.get(provider_id)
