"""PostgREST query construction for pulls, point lookups and optimistic updates."""

import json
from enum import Enum
from typing import Any
from urllib.parse import quote_plus, urlencode

from supabase_replication.errors import UnsupportedFieldTypeError
from supabase_replication.models.checkpoint import Checkpoint

QueryParams = list[tuple[str, str]]


class ValueKind(Enum):
    """Closed set of value kinds usable in an equality precondition."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"


# `=` never matches NULL in SQL, so booleans and nulls go through `IS`.
PRECONDITION_OPERATORS: dict[ValueKind, str] = {
    ValueKind.STRING: "eq",
    ValueKind.NUMBER: "eq",
    ValueKind.BOOLEAN: "is",
    ValueKind.NULL: "is",
}


def classify_value(field: str, value: Any) -> ValueKind:
    """
    Determine the precondition kind of a field value.

    Args:
        field: Field name, used for the error message
        value: Field value from the assumed master state

    Returns:
        ValueKind of the value

    Raises:
        UnsupportedFieldTypeError: For structured values (dicts, lists) or unknown types
    """
    if value is None:
        return ValueKind.NULL
    # bool is a subclass of int, check it first
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    raise UnsupportedFieldTypeError(field, value)


def format_operand(kind: ValueKind, value: Any) -> str:
    if kind is ValueKind.NULL:
        return "null"
    if kind is ValueKind.BOOLEAN:
        return "true" if value else "false"
    return str(value)


def build_preconditions(assumed_state: dict[str, Any]) -> QueryParams:
    """
    Build one equality condition per field of the assumed master state.

    Fields keep their order in ``assumed_state``. Every field must match for the
    update to apply, which makes the whole row the optimistic concurrency token.

    Raises:
        UnsupportedFieldTypeError: If any field holds a structured value
    """
    conditions: QueryParams = []
    for field, value in assumed_state.items():
        kind = classify_value(field, value)
        conditions.append((field, f"{PRECONDITION_OPERATORS[kind]}.{format_operand(kind, value)}"))
    return conditions


def quote_filter_value(value: Any) -> str:
    """Quote a value for use inside a logical filter tree, escaping embedded quotes."""
    return json.dumps(value, ensure_ascii=False)


def checkpoint_filter(checkpoint: Checkpoint, modified_field: str, primary_key: str) -> str:
    """
    Build the logical filter selecting rows strictly after a checkpoint.

    ``modified > m OR (modified = m AND primary_key > k)``
    """
    modified = quote_filter_value(checkpoint.modified)
    key = quote_filter_value(checkpoint.primary_key_value)
    is_newer = f"{modified_field}.gt.{modified}"
    is_same_age = f"{modified_field}.eq.{modified}"
    return f"({is_newer},and({is_same_age},{primary_key}.gt.{key}))"


def pull_query(
    checkpoint: Checkpoint | None, batch_size: int, modified_field: str, primary_key: str
) -> QueryParams:
    params: QueryParams = [("select", "*")]
    if checkpoint is not None and checkpoint.modified:
        params.append(("or", checkpoint_filter(checkpoint, modified_field, primary_key)))
    params.append(("order", f"{modified_field}.asc,{primary_key}.asc"))
    params.append(("limit", str(batch_size)))
    return params


def primary_key_query(primary_key: str, value: Any) -> QueryParams:
    return [("select", "*"), (primary_key, f"eq.{value}"), ("limit", "1")]


def encode_query(params: QueryParams) -> str:
    """Encode query parameters as application/x-www-form-urlencoded, keeping ``*`` literal."""
    return urlencode(params, safe="*", quote_via=quote_plus)
