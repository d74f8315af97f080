"""Resolve a Casper contract package and call its entry points through casper-client."""

from .config import DeployConfig, load_config
from .deploy import DeployResult, submit_deploy
from .errors import DeployError
from .registry import ContractProfile, bundled_profile, load_profile
from .resolver import resolve_package_hash
from .rpc import NodeRpcClient

__version__ = "0.1.0"

__all__ = [
    "ContractProfile",
    "DeployConfig",
    "DeployError",
    "DeployResult",
    "NodeRpcClient",
    "bundled_profile",
    "load_config",
    "load_profile",
    "resolve_package_hash",
    "submit_deploy",
]
