import math
from typing import Any, Dict, Tuple

from pydantic import TypeAdapter, ValidationError

from errors import MalformedInput

KEY_PREFIX = "user:"

_payload_adapter = TypeAdapter(Dict[str, Any])


def storage_key(user_id: str) -> str:
    return f"{KEY_PREFIX}{user_id}"


def parse_payload(raw: bytes) -> Dict[str, Any]:
    """Decode a request body into a JSON object.

    Raises MalformedInput carrying the parser message when the body is not
    valid JSON or is not an object.
    """
    try:
        return _payload_adapter.validate_json(raw)
    except ValidationError as e:
        raise MalformedInput(e.errors()[0]["msg"]) from e


def to_text(value: Any) -> str:
    """Render a scalar JSON value as the string stored in the hash."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if value is None:
        return "null"
    raise TypeError(f"unsupported value type {type(value).__name__}")


def build_record(payload: Dict[str, Any]) -> Tuple[str, Dict[str, str]]:
    """Validate a decoded payload and flatten it into (user_id, fields)."""
    if "id" not in payload:
        raise MalformedInput("field 'id' is required")
    user_id = payload["id"]
    if not isinstance(user_id, str):
        raise MalformedInput("field 'id' must be a string")
    if not user_id:
        raise MalformedInput("field 'id' must not be empty")

    fields: Dict[str, str] = {}
    for name, value in payload.items():
        if isinstance(value, (dict, list)):
            raise MalformedInput(
                f"field '{name}' must be a string, number, boolean or null"
            )
        if isinstance(value, float) and not math.isfinite(value):
            raise MalformedInput(f"field '{name}' must be a finite number")
        fields[name] = to_text(value)
    return user_id, fields
