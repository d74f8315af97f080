"""
Configuration for a single invocation.

`DeployConfig` is passed explicitly into every component. Only
`load_config` reads the environment (and an optional .env file), and it is
called from the CLI.
"""

import dataclasses
import os
import shlex
from typing import List, Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigError
from .retry import RetryPolicy

DEFAULT_CLIENT_COMMAND = "casper-client"
DEFAULT_RPC_TIMEOUT = 30.0


@dataclasses.dataclass(frozen=True)
class DeployConfig:
    node_address: str
    account_hash: str
    chain_name: Optional[str] = None
    secret_key_path: Optional[str] = None
    client_command: List[str] = dataclasses.field(default_factory=lambda: [DEFAULT_CLIENT_COMMAND])
    rpc_timeout: float = DEFAULT_RPC_TIMEOUT
    retry: RetryPolicy = dataclasses.field(default_factory=RetryPolicy)

    def require_deploy_settings(self) -> None:
        """Deploys additionally need a chain name and a signing key."""
        missing = [name for name, value in (
            ("CHAIN_NAME", self.chain_name),
            ("SECRET_KEY_PATH", self.secret_key_path),
        ) if not value]
        if missing:
            raise ConfigError(f"Missing configuration for deploy: {', '.join(missing)}")


def _float_setting(values: Mapping[str, str], name: str, default: float) -> float:
    raw = values.get(name)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


def _int_setting(values: Mapping[str, str], name: str, default: int) -> int:
    raw = values.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def load_config(
    overrides: Optional[Mapping[str, Optional[str]]] = None,
    env_file: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> DeployConfig:
    """
    Build a DeployConfig from CLI overrides, then environment variables.

    `overrides` uses the environment variable names as keys; None values are
    ignored so unset CLI flags fall through to the environment.
    """
    if environ is None:
        # Existing environment variables win over .env entries
        load_dotenv(dotenv_path=env_file)
        environ = os.environ

    values = dict(environ)
    for name, value in (overrides or {}).items():
        if value is not None:
            values[name] = value

    node_address = values.get("NODE_ADDRESS")
    account_hash = values.get("ACCOUNT_HASH")
    missing = [name for name, value in (("NODE_ADDRESS", node_address), ("ACCOUNT_HASH", account_hash)) if not value]
    if missing:
        raise ConfigError(f"Missing configuration: {', '.join(missing)}")
    if not node_address.startswith(("http://", "https://")):
        raise ConfigError(f"NODE_ADDRESS must start with http:// or https://, got {node_address!r}")

    client_command = shlex.split(values.get("CASPER_CLIENT") or DEFAULT_CLIENT_COMMAND)
    if not client_command:
        raise ConfigError("CASPER_CLIENT must name a command")

    defaults = RetryPolicy()
    retry = RetryPolicy(
        attempts=_int_setting(values, "RESOLVE_ATTEMPTS", defaults.attempts),
        initial_delay=_float_setting(values, "RESOLVE_INITIAL_DELAY", defaults.initial_delay),
        multiplier=defaults.multiplier,
        max_delay=defaults.max_delay,
        deadline=_float_setting(values, "RESOLVE_DEADLINE", defaults.deadline),
    )
    if retry.attempts < 1:
        raise ConfigError("RESOLVE_ATTEMPTS must be at least 1")

    return DeployConfig(
        node_address=node_address.rstrip("/"),
        account_hash=account_hash,
        chain_name=values.get("CHAIN_NAME") or None,
        secret_key_path=values.get("SECRET_KEY_PATH") or None,
        client_command=client_command,
        rpc_timeout=_float_setting(values, "RPC_TIMEOUT", DEFAULT_RPC_TIMEOUT),
        retry=retry,
    )
