"""
VPS Control Provider Abstraction Layer
======================================

One lifecycle contract over several virtual server control planes.

Supported Providers:
- Virtualizor (admin API)
- Vultr (v2 REST API)
- 20i (reseller REST API)
- Example (canned data)
"""

from .base import (
    Acknowledgement,
    ChangeRootPasswordParams,
    CreateParams,
    FormPostConnection,
    GetConnectionParams,
    IsoStatus,
    LifecycleState,
    Operation,
    Outcome,
    RedirectConnection,
    ReinstallParams,
    ResizeParams,
    ServerIdentifierParams,
    ServerInfo,
    ServerProvider,
    SSHConnection,
    VNCConnection,
)
from .errors import ClassifiedError, ErrorKind, ProviderError
from .registry import ProviderRegistry, register_provider

# Importing the adapters registers them
from .example import ExampleProvider
from .twentyi import TwentyIProvider
from .virtualizor import VirtualizorProvider
from .vultr import VultrProvider

__all__ = [
    "Acknowledgement",
    "ChangeRootPasswordParams",
    "ClassifiedError",
    "CreateParams",
    "ErrorKind",
    "ExampleProvider",
    "FormPostConnection",
    "GetConnectionParams",
    "IsoStatus",
    "LifecycleState",
    "Operation",
    "Outcome",
    "ProviderError",
    "ProviderRegistry",
    "RedirectConnection",
    "ReinstallParams",
    "ResizeParams",
    "ServerIdentifierParams",
    "ServerInfo",
    "ServerProvider",
    "SSHConnection",
    "TwentyIProvider",
    "VirtualizorProvider",
    "VNCConnection",
    "VultrProvider",
    "register_provider",
]
