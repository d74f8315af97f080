"""
Type tags for session arguments, in the JSON form casper-client accepts for
--session-args-json:

    {"name": "amount", "type": "U512", "value": "1"}
    {"name": "tokens", "type": {"List": "Key"}, "value": ["hash-..."]}
    {"name": "src_chain_id", "type": {"ByteArray": 32}, "value": "00..02"}
"""

import dataclasses
import json
import re
from typing import Any, Dict, Union

from .errors import InvalidArgumentError

CLType = Union[str, Dict[str, Any]]

UNSIGNED_BITS = {"U8": 8, "U32": 32, "U64": 64, "U128": 128, "U256": 256, "U512": 512}
SIGNED_BITS = {"I32": 32, "I64": 64}
# casper-client takes these as JSON numbers; wider ones as decimal strings
JSON_NUMBER_TYPES = {"U8", "U32", "U64", "I32", "I64"}

SCALAR_TYPES = {"Bool", "String", "Key", "URef", "PublicKey", "Unit"} | set(UNSIGNED_BITS) | set(SIGNED_BITS)

KEY_RE = re.compile(r"^[a-z][a-z-]*-[0-9a-fA-F]{64}(-\d{3})?$")
UREF_RE = re.compile(r"^uref-[0-9a-fA-F]{64}-\d{3}$")
PUBLIC_KEY_RE = re.compile(r"^(01[0-9a-fA-F]{64}|02[0-9a-fA-F]{66})$")
HEX_RE = re.compile(r"^[0-9a-fA-F]*$")


def describe(cl_type: CLType) -> str:
    if isinstance(cl_type, str):
        return cl_type
    if isinstance(cl_type, dict) and len(cl_type) == 1:
        (tag, inner), = cl_type.items()
        if tag == "ByteArray":
            return f"ByteArray[{inner}]"
        return f"{tag}<{describe(inner)}>"
    return repr(cl_type)


def check_type(cl_type: CLType) -> None:
    """Raise InvalidArgumentError unless `cl_type` is a supported tag."""
    if isinstance(cl_type, str):
        if cl_type not in SCALAR_TYPES:
            raise InvalidArgumentError(f"Unsupported type tag {cl_type!r}")
        return
    if not isinstance(cl_type, dict) or len(cl_type) != 1:
        raise InvalidArgumentError(f"Unsupported type tag {cl_type!r}")
    (tag, inner), = cl_type.items()
    if tag in ("List", "Option"):
        check_type(inner)
    elif tag == "ByteArray":
        if not isinstance(inner, int) or isinstance(inner, bool) or inner < 0:
            raise InvalidArgumentError(f"ByteArray length must be a non-negative integer, got {inner!r}")
    else:
        raise InvalidArgumentError(f"Unsupported type tag {tag!r}")


def _integer(value: Any, cl_type: str) -> int:
    if isinstance(value, bool):
        raise InvalidArgumentError(f"{cl_type} expects an integer, got a boolean")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and re.fullmatch(r"-?\d+", value.strip()):
        return int(value)
    raise InvalidArgumentError(f"{cl_type} expects an integer, got {value!r}")


def validate(cl_type: CLType, value: Any) -> None:
    """Raise InvalidArgumentError if `value` cannot be sent as `cl_type`."""
    check_type(cl_type)
    if isinstance(cl_type, str):
        _validate_scalar(cl_type, value)
        return

    (tag, inner), = cl_type.items()
    if tag == "List":
        if not isinstance(value, list):
            raise InvalidArgumentError(f"{describe(cl_type)} expects a list, got {value!r}")
        for item in value:
            validate(inner, item)
    elif tag == "Option":
        if value is not None:
            validate(inner, value)
    elif tag == "ByteArray":
        if not isinstance(value, str) or not HEX_RE.match(value) or len(value) != inner * 2:
            raise InvalidArgumentError(f"{describe(cl_type)} expects {inner * 2} hex characters, got {value!r}")


def _validate_scalar(cl_type: str, value: Any) -> None:
    if cl_type in UNSIGNED_BITS:
        number = _integer(value, cl_type)
        if not 0 <= number < 2 ** UNSIGNED_BITS[cl_type]:
            raise InvalidArgumentError(f"{value!r} is out of range for {cl_type}")
    elif cl_type in SIGNED_BITS:
        number = _integer(value, cl_type)
        bound = 2 ** (SIGNED_BITS[cl_type] - 1)
        if not -bound <= number < bound:
            raise InvalidArgumentError(f"{value!r} is out of range for {cl_type}")
    elif cl_type == "Bool":
        if not isinstance(value, bool):
            raise InvalidArgumentError(f"Bool expects true or false, got {value!r}")
    elif cl_type == "String":
        if not isinstance(value, str):
            raise InvalidArgumentError(f"String expects a string, got {value!r}")
    elif cl_type == "Unit":
        if value is not None:
            raise InvalidArgumentError(f"Unit expects null, got {value!r}")
    else:
        patterns = {"Key": KEY_RE, "URef": UREF_RE, "PublicKey": PUBLIC_KEY_RE}
        if not isinstance(value, str) or not patterns[cl_type].match(value):
            raise InvalidArgumentError(f"{value!r} is not a valid {cl_type}")


def coerce(cl_type: CLType, text: str) -> Any:
    """Turn command-line text into the JSON value expected for `cl_type`."""
    check_type(cl_type)
    if isinstance(cl_type, dict):
        tag = next(iter(cl_type))
        if tag == "ByteArray":
            value = text
        elif tag == "Option" and text in ("", "null", "none"):
            value = None
        elif tag == "Option":
            value = coerce(cl_type["Option"], text)
        else:
            try:
                value = json.loads(text)
            except json.JSONDecodeError as e:
                raise InvalidArgumentError(f"{describe(cl_type)} expects a JSON list, got {text!r}") from e
    elif cl_type == "Bool":
        lowered = text.strip().lower()
        if lowered not in ("true", "false"):
            raise InvalidArgumentError(f"Bool expects true or false, got {text!r}")
        value = lowered == "true"
    elif cl_type in JSON_NUMBER_TYPES:
        value = _integer(text, cl_type)
    elif cl_type in UNSIGNED_BITS:
        value = str(_integer(text, cl_type))
    elif cl_type == "Unit":
        value = None
    else:
        value = text
    validate(cl_type, value)
    return value


@dataclasses.dataclass(frozen=True)
class TypedArg:
    name: str
    cl_type: CLType
    value: Any

    def __post_init__(self):
        if not self.name:
            raise InvalidArgumentError("Argument name must not be empty")
        try:
            validate(self.cl_type, self.value)
        except InvalidArgumentError as e:
            raise InvalidArgumentError(f"Argument {self.name!r}: {e}") from None

    def to_json(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.cl_type, "value": self.value}

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "TypedArg":
        if not isinstance(data, dict) or not {"name", "type", "value"} <= set(data):
            raise InvalidArgumentError(f"Argument must have name, type and value: {data!r}")
        return cls(name=data["name"], cl_type=data["type"], value=data["value"])
