"""
Deploy submission through the external client.

Signing and serialization happen inside casper-client; this module only
renders its argv, runs it and reads the deploy hash back from its JSON
output.
"""

import asyncio
import dataclasses
import json
import logging
import os
from typing import Any, Dict, List, Optional, Sequence

from .cltypes import TypedArg
from .config import DeployConfig
from .errors import NotFoundError, SubmissionError
from .retry import RetryPolicy, retry_async
from .rpc import NodeRpcClient, error_object

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class DeployResult:
    deploy_hash: str
    entry_point: str
    package_hash: str
    state_root_hash: Optional[str] = None
    response: Dict[str, Any] = dataclasses.field(default_factory=dict, compare=False, repr=False)


@dataclasses.dataclass(frozen=True)
class DeployStatus:
    deploy_hash: str
    executed: bool
    success: Optional[bool] = None
    error_message: Optional[str] = None


def session_args_json(args: Sequence[TypedArg]) -> str:
    return json.dumps([arg.to_json() for arg in args])


def build_put_deploy_command(
    config: DeployConfig,
    package_hash: str,
    entry_point: str,
    args: Sequence[TypedArg],
    payment_amount: int,
) -> List[str]:
    config.require_deploy_settings()
    return [
        *config.client_command,
        "put-deploy",
        "--node-address", config.node_address,
        "--chain-name", config.chain_name,
        "--secret-key", config.secret_key_path,
        "--payment-amount", str(payment_amount),
        "--session-package-hash", package_hash,
        "--session-entry-point", entry_point,
        "--session-args-json", session_args_json(args),
    ]


def parse_client_output(stdout: str) -> Dict[str, Any]:
    """Return the JSON-RPC response object printed by the client."""
    text = stdout.strip()
    start = text.find("{")
    if start < 0:
        raise SubmissionError(f"Client printed no JSON response: {text[:200]!r}")
    try:
        # Anything the build tool printed before the response is skipped
        response, _ = json.JSONDecoder().raw_decode(text[start:])
    except json.JSONDecodeError as e:
        raise SubmissionError(f"Client output is not valid JSON: {e}") from e
    if not isinstance(response, dict):
        raise SubmissionError("Client output is not a JSON object")
    return response


def _check_secret_key(path: str) -> None:
    if not os.path.isfile(path):
        raise SubmissionError(f"Secret key file not found: {path}")
    if not os.access(path, os.R_OK):
        raise SubmissionError(f"Secret key file is not readable: {path}")


async def _run_client(command: List[str]) -> str:
    logger.debug(f"Running: {' '.join(command)}")
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise SubmissionError(f"Cannot run client {command[0]!r}: {e}") from e

    stdout, stderr = await process.communicate()
    stdout_text = stdout.decode(errors="replace")
    stderr_text = stderr.decode(errors="replace")
    if process.returncode != 0:
        logger.error(f"Client STDERR: {stderr_text.strip()}")
        logger.error(f"Client STDOUT: {stdout_text.strip()}")
        raise SubmissionError(f"Client exited with status {process.returncode}: {stderr_text.strip()[:300]}")
    return stdout_text


async def submit_deploy(
    config: DeployConfig,
    package_hash: str,
    entry_point: str,
    args: Sequence[TypedArg],
    payment_amount: int,
    state_root_hash: Optional[str] = None,
) -> DeployResult:
    """
    Sign and send one deploy via the external client.

    Not idempotent: calling twice with the same arguments sends two deploys.
    """
    command = build_put_deploy_command(config, package_hash, entry_point, args, payment_amount)
    _check_secret_key(config.secret_key_path)

    logger.info(f"Submitting deploy: {entry_point} on package {package_hash} ({len(args)} args, payment {payment_amount})")
    stdout = await _run_client(command)
    response = parse_client_output(stdout)

    if "error" in response:
        error = error_object(response["error"])
        raise SubmissionError(f"Deploy rejected: {error.get('message', error)}")
    result = response.get("result")
    deploy_hash = result.get("deploy_hash") if isinstance(result, dict) else None
    if not deploy_hash:
        raise SubmissionError("Client response has no result.deploy_hash")

    logger.info(f"Deploy hash: {deploy_hash}")
    return DeployResult(
        deploy_hash=deploy_hash,
        entry_point=entry_point,
        package_hash=package_hash,
        state_root_hash=state_root_hash,
        response=response,
    )


def deploy_status(deploy_hash: str, result: Dict[str, Any]) -> DeployStatus:
    """Read execution status from an info_get_deploy result (1.x or 2.x layout)."""
    # 2.x: execution_info.execution_result.Version2 / Version1
    execution_info = result.get("execution_info")
    if isinstance(execution_info, dict) and execution_info.get("execution_result"):
        execution_result = execution_info["execution_result"]
        if "Version2" in execution_result:
            error_message = execution_result["Version2"].get("error_message")
            return DeployStatus(deploy_hash, executed=True, success=error_message is None, error_message=error_message)
        execution_result = execution_result.get("Version1", execution_result)
        return _legacy_status(deploy_hash, execution_result)

    # 1.x: execution_results: [{"block_hash": ..., "result": {"Success"|"Failure": ...}}]
    execution_results = result.get("execution_results")
    if execution_results:
        return _legacy_status(deploy_hash, execution_results[0].get("result", {}))
    return DeployStatus(deploy_hash, executed=False)


def _legacy_status(deploy_hash: str, execution_result: Dict[str, Any]) -> DeployStatus:
    if "Failure" in execution_result:
        return DeployStatus(deploy_hash, executed=True, success=False,
                            error_message=execution_result["Failure"].get("error_message"))
    return DeployStatus(deploy_hash, executed=True, success="Success" in execution_result)


class DeployPending(NotFoundError):
    pass


async def wait_for_deploy(rpc: NodeRpcClient, deploy_hash: str, policy: RetryPolicy, sleep=None) -> DeployStatus:
    """Poll info_get_deploy until the deploy has executed or the policy gives up."""
    async def attempt() -> DeployStatus:
        status = deploy_status(deploy_hash, await rpc.get_deploy(deploy_hash))
        if not status.executed:
            raise DeployPending(f"Deploy {deploy_hash} not executed yet")
        return status

    kwargs = {"sleep": sleep} if sleep is not None else {}
    try:
        return await retry_async(attempt, policy, retry_on=(NotFoundError,),
                                 description=f"Waiting for deploy {deploy_hash}", **kwargs)
    except NotFoundError:
        return DeployStatus(deploy_hash, executed=False)
