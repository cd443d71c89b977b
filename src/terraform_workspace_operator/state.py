from __future__ import annotations

import base64
import binascii
import gzip
import json
from collections.abc import Mapping
from typing import Any

from .models import STATE_SECRET_KEY, Output, State, StateOutput


class StateDecodeError(RuntimeError):
    """Raised when a state secret does not hold a readable terraform state."""


def decode_state(secret_data: Mapping[str, str] | None) -> State:
    """Decode the terraform state stored in a state secret's data map.

    Values in the data map are base64 encoded as returned by the Kubernetes
    API. The state itself is gzip compressed JSON.
    """
    encoded = (secret_data or {}).get(STATE_SECRET_KEY)
    if encoded is None:
        raise StateDecodeError(f"expected key {STATE_SECRET_KEY} not found in state secret")

    try:
        compressed = base64.b64decode(encoded, validate=True)
        document = json.loads(gzip.decompress(compressed))
    except (binascii.Error, OSError, EOFError, ValueError) as error:
        raise StateDecodeError(f"state secret could not be decoded: {_error_message(error)}") from error

    return parse_state(document)


def parse_state(document: Any) -> State:
    if not isinstance(document, dict):
        raise StateDecodeError("state document must be a JSON object")

    try:
        serial = int(document.get("serial") or 0)
    except (TypeError, ValueError) as error:
        raise StateDecodeError(f"state serial is not an integer: {document.get('serial')!r}") from error

    outputs: dict[str, StateOutput] = {}
    for name, raw_output in (document.get("outputs") or {}).items():
        if not isinstance(raw_output, dict):
            raise StateDecodeError(f"state output {name!r} must be a JSON object")
        outputs[name] = StateOutput(
            value=raw_output.get("value"),
            sensitive=bool(raw_output.get("sensitive", False)),
        )
    return State(serial=serial, outputs=outputs)


def outputs_for_status(state: State) -> tuple[Output, ...]:
    return tuple(
        Output(key=name, value=_render_output_value(output.value))
        for name, output in sorted(state.outputs.items())
    )


def _render_output_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True)


def _error_message(error: Exception) -> str:
    message = str(error).strip()
    return message or error.__class__.__name__
