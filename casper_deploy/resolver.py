import logging
from typing import Any, Dict, Tuple

from .errors import MalformedResponseError, MissingNamedKeyError, NotFoundError
from .retry import RetryPolicy, retry_async
from .rpc import NodeRpcClient

logger = logging.getLogger(__name__)

# Longest first so "contract-package-wasm" is not stripped as "contract-package-"
PACKAGE_PREFIXES = (
    "contract-package-wasm",
    "contract-package-",
    "package-",
    "hash-",
)


def strip_package_prefix(raw: str) -> str:
    for prefix in PACKAGE_PREFIXES:
        if raw.startswith(prefix):
            return raw[len(prefix):]
    return raw


def _named_key_value(named_keys: Any, named_key: str) -> str:
    # Casper returns named keys as [{"name": ..., "key": ...}]; accept a plain dict too
    if isinstance(named_keys, dict):
        value = named_keys.get(named_key)
    elif isinstance(named_keys, list):
        value = next((entry.get("key") for entry in named_keys
                      if isinstance(entry, dict) and entry.get("name") == named_key), None)
    else:
        raise MalformedResponseError("named_keys has an unexpected shape")
    if value is None:
        raise MissingNamedKeyError(f"Named key {named_key!r} not present")
    if not isinstance(value, str) or not value:
        raise MalformedResponseError(f"Named key {named_key!r} has no usable value")
    return value


def resolve_package_hash(stored_value: Dict[str, Any], named_key: str) -> str:
    """
    Extract the bare package hash from a stored value.

    Handles an addressable entity (``AddressableEntity.package_hash``), a
    1.x contract (``Contract.contract_package_hash``) and an account or entity
    that still carries its named keys, in which case `named_key` is looked up.
    """
    if not isinstance(stored_value, dict):
        raise MalformedResponseError("stored_value is not an object")

    if "AddressableEntity" in stored_value:
        entity = stored_value["AddressableEntity"]
        if not isinstance(entity, dict):
            raise MalformedResponseError("AddressableEntity is not an object")
        if entity.get("package_hash"):
            raw = entity["package_hash"]
        elif "named_keys" in entity:
            raw = _named_key_value(entity["named_keys"], named_key)
        else:
            raise MalformedResponseError("AddressableEntity has no package_hash")
    elif "Contract" in stored_value:
        contract = stored_value["Contract"]
        raw = contract.get("contract_package_hash") if isinstance(contract, dict) else None
        if not raw:
            raise MalformedResponseError("Contract has no contract_package_hash")
    elif "Account" in stored_value:
        account = stored_value["Account"]
        if not isinstance(account, dict) or "named_keys" not in account:
            raise MalformedResponseError("Account has no named_keys")
        raw = _named_key_value(account["named_keys"], named_key)
    else:
        kinds = ", ".join(sorted(stored_value)) or "nothing"
        raise MalformedResponseError(f"Expected a contract entity for {named_key!r}, got {kinds}")

    if not isinstance(raw, str):
        raise MalformedResponseError(f"Package hash for {named_key!r} is not a string")
    package_hash = strip_package_prefix(raw)
    if not package_hash:
        raise MalformedResponseError(f"Package hash for {named_key!r} is empty")
    return package_hash


async def wait_for_package_hash(
    rpc: NodeRpcClient,
    account_hash: str,
    named_key: str,
    policy: RetryPolicy,
    sleep=None,
) -> Tuple[str, str]:
    """
    Resolve `named_key` under `account_hash`, retrying while it is not indexed yet.

    Every attempt fetches a fresh state root and queries under it, so the
    returned package hash always belongs to the returned state root hash.
    """
    async def attempt() -> Tuple[str, str]:
        state_root_hash = await rpc.get_state_root_hash()
        stored_value = await rpc.query_state(state_root_hash, account_hash, [named_key])
        return state_root_hash, resolve_package_hash(stored_value, named_key)

    kwargs = {"sleep": sleep} if sleep is not None else {}
    try:
        state_root_hash, package_hash = await retry_async(
            attempt, policy, retry_on=(NotFoundError,),
            description=f"Resolving {named_key}", **kwargs,
        )
    except MissingNamedKeyError:
        raise
    except NotFoundError as e:
        raise MissingNamedKeyError(f"Named key {named_key!r} not found under {account_hash}: {e}") from e

    logger.info(f"Retrieved package_hash: {package_hash}")
    return state_root_hash, package_hash
