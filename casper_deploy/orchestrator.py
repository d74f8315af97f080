import dataclasses
import logging
from typing import Any, Dict, List, Mapping, Optional

from .cltypes import TypedArg
from .config import DeployConfig
from .deploy import DeployResult, DeployStatus, build_put_deploy_command, submit_deploy, wait_for_deploy
from .errors import InvalidArgumentError
from .registry import ContractProfile
from .resolver import wait_for_package_hash
from .rpc import NodeRpcClient

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class InvocationOutcome:
    entry_point: str
    arguments: List[TypedArg]
    state_root_hash: str
    package_hash: str
    command: List[str]
    result: Optional[DeployResult] = None
    status: Optional[DeployStatus] = None


async def run_invocation(
    config: DeployConfig,
    profile: ContractProfile,
    entry_point: str,
    overrides: Optional[Mapping[str, Any]] = None,
    payment_amount: Optional[int] = None,
    wait: bool = False,
    dry_run: bool = False,
    sleep=None,
) -> InvocationOutcome:
    """
    Resolve the contract package and call one entry point on it.

    Arguments are built first so an unknown entry point or bad override fails
    before anything touches the node. Then a fresh state root and the package
    hash are resolved together, and the deploy is submitted once.
    """
    arguments = profile.build_arguments(entry_point, overrides)
    if payment_amount is not None and payment_amount <= 0:
        raise InvalidArgumentError(f"Payment amount must be positive, got {payment_amount}")
    payment = profile.payment_amount if payment_amount is None else payment_amount
    if not dry_run:
        config.require_deploy_settings()

    async with NodeRpcClient(config.node_address, timeout=config.rpc_timeout) as rpc:
        state_root_hash, package_hash = await wait_for_package_hash(
            rpc, config.account_hash, profile.named_key, config.retry, sleep=sleep,
        )

        # A dry run may lack deploy settings; it then reports no command
        command = []
        if config.chain_name and config.secret_key_path:
            command = build_put_deploy_command(config, package_hash, entry_point, arguments, payment)
        outcome = InvocationOutcome(
            entry_point=entry_point,
            arguments=arguments,
            state_root_hash=state_root_hash,
            package_hash=package_hash,
            command=command,
        )
        if dry_run:
            logger.info("Dry run: deploy not submitted")
            return outcome

        outcome.result = await submit_deploy(
            config, package_hash, entry_point, arguments, payment, state_root_hash=state_root_hash,
        )
        if wait:
            outcome.status = await wait_for_deploy(rpc, outcome.result.deploy_hash, config.retry, sleep=sleep)
    return outcome


async def run_query(config: DeployConfig, path: str, key: Optional[str] = None) -> Dict[str, Any]:
    """Fetch a fresh state root and query `path` (slash separated) under the account."""
    segments = [segment for segment in path.split("/") if segment]
    async with NodeRpcClient(config.node_address, timeout=config.rpc_timeout) as rpc:
        state_root_hash = await rpc.get_state_root_hash()
        return await rpc.query_state(state_root_hash, key or config.account_hash, segments)
