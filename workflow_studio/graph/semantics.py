from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any

from workflow_studio.graph.models import (
    ConditionConfig,
    EndConfig,
    LogStatus,
    Node,
    StartConfig,
    TransformConfig,
)


CONDITION_RESULT_KEY = "_condition_met"
JS_INFINITY = {"Infinity": math.inf, "+Infinity": math.inf, "-Infinity": -math.inf}

DECIMAL_LITERAL_RE = re.compile(
    r"[+-]?(?:\d+(?P<fraction>\.\d*)?|(?P<fraction_only>\.\d+))(?P<exponent>[eE][+-]?\d+)?",
    re.ASCII,
)
RADIX_LITERAL_RE = re.compile(r"0[xX][0-9a-fA-F]+|0[oO][0-7]+|0[bB][01]+")

_MISSING = object()


@dataclass(slots=True)
class NodeOutcome:
    output: dict[str, Any]
    status: LogStatus
    message: str | None = None

    @property
    def condition_met(self) -> bool:
        return bool(self.output.get(CONDITION_RESULT_KEY))


def execute_node(node: Node, input_data: dict[str, Any]) -> NodeOutcome:
    """Apply one node's semantics to its input record.

    Never raises: any failure while evaluating the node is reported as an
    ``error`` outcome carrying the exception text, with the input passed
    through unchanged.
    """
    output: dict[str, Any] = dict(input_data)
    try:
        config = node.config
        if isinstance(config, StartConfig):
            return NodeOutcome(
                output=dict(config.payload) if isinstance(config.payload, dict) else {},
                status="success",
                message="Started workflow execution",
            )
        if isinstance(config, TransformConfig):
            return NodeOutcome(
                output=apply_transform(config, input_data),
                status="success",
                message=f"Applied {config.operation} to {config.field}",
            )
        if isinstance(config, ConditionConfig):
            met = evaluate_condition(config, input_data)
            output[CONDITION_RESULT_KEY] = met
            operand = to_text(config.value) if _is_truthy(config.value) else ""
            return NodeOutcome(
                output=output,
                status="success",
                message=f"Condition {config.field} {config.operator} {operand}: {to_text(met)}",
            )
        if isinstance(config, EndConfig):
            return NodeOutcome(output=output, status="success", message="Workflow execution completed")
        raise TypeError(f"Unsupported node config {type(config).__name__} on node '{node.id}'.")
    except Exception as exc:  # noqa: BLE001
        return NodeOutcome(output=output, status="error", message=str(exc) or exc.__class__.__name__)


def apply_transform(config: TransformConfig, input_data: dict[str, Any]) -> dict[str, Any]:
    output = dict(input_data)
    key = config.field
    current = input_data.get(key)
    operation = config.operation

    if operation == "uppercase":
        if isinstance(current, str):
            output[key] = current.upper()
    elif operation == "lowercase":
        if isinstance(current, str):
            output[key] = current.lower()
    elif operation == "append":
        if isinstance(current, str):
            output[key] = current + _operand_text(config.value)
    elif operation == "prepend":
        if isinstance(current, str):
            output[key] = _operand_text(config.value) + current
    elif operation == "multiply":
        if is_number(current):
            output[key] = current * _operand_number(config.value, fallback=1)
    elif operation == "add":
        if is_number(current):
            output[key] = current + _operand_number(config.value, fallback=0)
    elif operation == "replace":
        output[key] = config.value
    else:
        raise ValueError(f"Unsupported transform operation '{operation}'.")

    return output


def evaluate_condition(config: ConditionConfig, input_data: dict[str, Any]) -> bool:
    raw = input_data.get(config.field, _MISSING)
    value = None if raw is _MISSING else raw
    expected = config.value
    operator = config.operator

    if operator == "equals":
        return strict_equals(value, expected)
    if operator == "notEquals":
        return not strict_equals(value, expected)
    if operator == "contains":
        return to_text(expected) in to_text(value)
    if operator in {"greaterThan", "lessThan", "greaterThanOrEqual", "lessThanOrEqual"}:
        # A missing field is NaN while an explicit null is 0.
        left = math.nan if raw is _MISSING else to_number(value)
        right = to_number(expected)
        if operator == "greaterThan":
            return left > right
        if operator == "lessThan":
            return left < right
        if operator == "greaterThanOrEqual":
            return left >= right
        return left <= right
    if operator == "isEmpty":
        return not _is_truthy(value)
    if operator == "isNotEmpty":
        return _is_truthy(value)
    if operator == "isEven":
        return is_number(value) and value % 2 == 0
    if operator == "isOdd":
        return is_number(value) and not value % 2 == 0
    if operator == "isDivisibleBy":
        divisor = to_number(expected)
        if not is_number(value) or divisor == 0 or math.isnan(divisor):
            return False
        return value % divisor == 0

    raise ValueError(f"Unsupported condition operator '{operator}'.")


def is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def strict_equals(left: object, right: object) -> bool:
    # No cross-type coercion: True != 1 and "1" != 1.
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if is_number(left) and is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def to_number(value: object) -> int | float:
    """Numeric coercion for comparisons.

    ``None`` and blank strings become 0; anything outside the decimal, radix
    and ``Infinity`` literal forms becomes NaN.
    """
    if isinstance(value, bool):
        return int(value)
    if is_number(value):
        return value
    if value is None:
        return 0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        if text in JS_INFINITY:
            return JS_INFINITY[text]
        if RADIX_LITERAL_RE.fullmatch(text):
            return int(text, 0)
        match = DECIMAL_LITERAL_RE.fullmatch(text)
        if match is None:
            # Rejects Python-only spellings such as "1_000", "inf" and "nan".
            return math.nan
        if not any(match.group(name) for name in ("fraction", "fraction_only", "exponent")):
            return int(text)
        return float(text)
    return math.nan


def to_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _operand_text(value: object) -> str:
    return to_text(value)


def _operand_number(value: object, *, fallback: int) -> int | float:
    number = to_number(value)
    if math.isnan(number) or number == 0:
        return fallback
    return number


def _is_truthy(value: object) -> bool:
    if value is None or value is False:
        return False
    if isinstance(value, str):
        return value != ""
    if is_number(value):
        return not (value == 0 or math.isnan(value))
    return True
