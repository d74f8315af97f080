"""
Per-contract argument templates.

A contract profile is a JSON file:

    {
      "contract": "asset_forwarder",
      "named_key": "contract_hash_asset_forwarder",
      "payment_amount": 1000,
      "entry_points": {
        "init": [],
        "set_dest_details_test": [
          {"name": "dest_chain_id", "type": "String", "value": "polygon"}
        ]
      }
    }

Bundled profiles live in casper_deploy/contracts/.
"""

import dataclasses
import json
import logging
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .cltypes import TypedArg, coerce, describe
from .errors import InvalidArgumentError, ProfileError, UnknownEntryPointError

logger = logging.getLogger(__name__)

BUNDLED_PACKAGE = "casper_deploy.contracts"


@dataclasses.dataclass(frozen=True)
class EntryPointSpec:
    name: str
    arguments: Tuple[TypedArg, ...] = ()

    def argument(self, name: str) -> Optional[TypedArg]:
        return next((arg for arg in self.arguments if arg.name == name), None)


@dataclasses.dataclass(frozen=True)
class ContractProfile:
    contract: str
    named_key: str
    payment_amount: int
    entry_points: Dict[str, EntryPointSpec]

    def entry_point_names(self) -> List[str]:
        return sorted(self.entry_points)

    def build_arguments(self, entry_point: str, overrides: Optional[Mapping[str, Any]] = None) -> List[TypedArg]:
        """
        Look up the argument template for `entry_point` and apply overrides.

        Override values that are strings are coerced from command-line text;
        anything else is taken as the JSON value and validated as is.
        """
        spec = self.entry_points.get(entry_point)
        if spec is None:
            raise UnknownEntryPointError(
                f"Invalid entry point {entry_point!r} for {self.contract} "
                f"(known: {', '.join(self.entry_point_names())})"
            )

        overrides = dict(overrides or {})
        unknown = sorted(set(overrides) - {arg.name for arg in spec.arguments})
        if unknown:
            raise InvalidArgumentError(f"{entry_point} takes no argument(s) named {', '.join(unknown)}")

        arguments = []
        for arg in spec.arguments:
            if arg.name not in overrides:
                arguments.append(arg)
                continue
            value = overrides[arg.name]
            if isinstance(value, str) and arg.cl_type != "String":
                value = coerce(arg.cl_type, value)
            arguments.append(TypedArg(name=arg.name, cl_type=arg.cl_type, value=value))
            logger.debug(f"Override {arg.name} ({describe(arg.cl_type)}) = {value!r}")
        return arguments


def _parse_profile(data: Any, source: str) -> ContractProfile:
    if not isinstance(data, dict):
        raise ProfileError(f"{source}: profile must be a JSON object")
    missing = [field for field in ("contract", "named_key", "entry_points") if field not in data]
    if missing:
        raise ProfileError(f"{source}: missing field(s) {', '.join(missing)}")
    if not isinstance(data["entry_points"], dict):
        raise ProfileError(f"{source}: entry_points must be an object")

    try:
        payment_amount = int(data.get("payment_amount", 0))
    except (TypeError, ValueError):
        raise ProfileError(f"{source}: payment_amount must be an integer") from None
    if payment_amount <= 0:
        raise ProfileError(f"{source}: payment_amount must be positive")

    entry_points = {}
    for name, raw_args in data["entry_points"].items():
        if raw_args is None:
            raw_args = []
        if not isinstance(raw_args, list):
            raise ProfileError(f"{source}: arguments of {name} must be a list")
        try:
            arguments = tuple(TypedArg.from_json(item) for item in raw_args)
        except InvalidArgumentError as e:
            raise ProfileError(f"{source}: entry point {name}: {e}") from e
        names = [arg.name for arg in arguments]
        if len(names) != len(set(names)):
            raise ProfileError(f"{source}: entry point {name} repeats an argument name")
        entry_points[name] = EntryPointSpec(name=name, arguments=arguments)

    return ContractProfile(
        contract=data["contract"],
        named_key=data["named_key"],
        payment_amount=payment_amount,
        entry_points=entry_points,
    )


def load_profile(path: Union[str, Path]) -> ContractProfile:
    path = Path(path)
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ProfileError(f"Profile file not found: {path}") from None
    except json.JSONDecodeError as e:
        raise ProfileError(f"{path}: invalid JSON: {e}") from e
    return _parse_profile(data, str(path))


def bundled_profiles() -> List[str]:
    return sorted(
        entry.name[:-len(".json")]
        for entry in resources.files(BUNDLED_PACKAGE).iterdir()
        if entry.name.endswith(".json")
    )


def bundled_profile(name: str) -> ContractProfile:
    resource = resources.files(BUNDLED_PACKAGE).joinpath(f"{name}.json")
    if not resource.is_file():
        raise ProfileError(f"No bundled profile {name!r} (available: {', '.join(bundled_profiles())})")
    try:
        data = json.loads(resource.read_text())
    except json.JSONDecodeError as e:
        raise ProfileError(f"Bundled profile {name}: invalid JSON: {e}") from e
    return _parse_profile(data, f"bundled profile {name}")
