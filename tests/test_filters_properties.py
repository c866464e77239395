"""Property-based tests for PostgREST query construction.

**Feature: supabase-replication, Property 3: Preconditions cover the assumed state**
**Feature: supabase-replication, Property 4: Structured values are rejected**
"""

import pytest
import structlog
from hypothesis import given, settings
from hypothesis import strategies as st

from supabase_replication.backend.filters import (
    ValueKind,
    build_preconditions,
    checkpoint_filter,
    classify_value,
    encode_query,
    primary_key_query,
    pull_query,
    quote_filter_value,
)
from supabase_replication.errors import UnsupportedFieldTypeError
from supabase_replication.models.checkpoint import Checkpoint

log = structlog.stdlib.get_logger()

field_names = st.text(alphabet="abcdefghijklmnopqrstuvwxyz_", min_size=1, max_size=12)
scalar_values = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(),
    st.floats(allow_nan=False, allow_infinity=False),
    st.text(max_size=20),
)
structured_values = st.one_of(
    st.dictionaries(st.text(max_size=5), st.integers(), max_size=3),
    st.lists(st.integers(), max_size=3),
)


def test_initial_pull_query_has_no_checkpoint_filter():
    params = pull_query(None, 100, "_modified", "id")

    assert encode_query(params) == "select=*&order=_modified.asc%2Cid.asc&limit=100"


def test_pull_query_after_checkpoint_is_encoded_exactly():
    checkpoint = Checkpoint(modified="2023-01-01", primary_key_value="42")

    params = pull_query(checkpoint, 100, "_modified", "id")

    assert encode_query(params) == (
        "select=*"
        "&or=%28_modified.gt.%222023-01-01%22%2Cand%28_modified.eq.%222023-01-01%22%2Cid.gt.%2242%22%29%29"
        "&order=_modified.asc%2Cid.asc"
        "&limit=100"
    )


def test_checkpoint_filter_tie_breaks_on_primary_key():
    checkpoint = Checkpoint(modified="2023-01-01T00:00:00+00:00", primary_key_value="b")

    assert checkpoint_filter(checkpoint, "updated_at", "uuid") == (
        '(updated_at.gt."2023-01-01T00:00:00+00:00",'
        'and(updated_at.eq."2023-01-01T00:00:00+00:00",uuid.gt."b"))'
    )


def test_checkpoint_with_empty_modified_pulls_from_start():
    checkpoint = Checkpoint(modified="", primary_key_value="1")

    assert [name for name, _ in pull_query(checkpoint, 5, "_modified", "id")] == [
        "select",
        "order",
        "limit",
    ]


def test_filter_values_escape_embedded_quotes():
    assert quote_filter_value('say "hi"') == '"say \\"hi\\""'
    assert quote_filter_value(7) == "7"


def test_primary_key_lookup_query():
    assert encode_query(primary_key_query("id", "1")) == "select=*&id=eq.1&limit=1"


def test_update_preconditions_are_encoded_exactly():
    assumed = {"id": "1", "name": "Remote Alice", "age": 42, "_deleted": False}

    assert encode_query(build_preconditions(assumed)) == (
        "id=eq.1&name=eq.Remote+Alice&age=eq.42&_deleted=is.false"
    )


def test_null_and_true_use_is_operator():
    assert build_preconditions({"age": None, "_deleted": True}) == [
        ("age", "is.null"),
        ("_deleted", "is.true"),
    ]


@pytest.mark.parametrize(
    "value,kind",
    [
        (None, ValueKind.NULL),
        (True, ValueKind.BOOLEAN),
        (False, ValueKind.BOOLEAN),
        (0, ValueKind.NUMBER),
        (1.5, ValueKind.NUMBER),
        ("", ValueKind.STRING),
        ("text", ValueKind.STRING),
    ],
)
def test_classify_value(value, kind):
    assert classify_value("field", value) is kind


@given(st.dictionaries(field_names, scalar_values, min_size=1, max_size=8))
@settings(max_examples=100)
def test_property_3_one_precondition_per_field_in_order(assumed: dict):
    """Property 3: Preconditions cover the assumed state.

    For any assumed master state of scalar values, exactly one condition is
    built per field, in field order, with ``is`` for booleans and nulls and
    ``eq`` for strings and numbers.

    **Feature: supabase-replication, Property 3: Preconditions cover the assumed state**
    """
    log.info("test_property_3_one_precondition_per_field_in_order", fields=len(assumed))

    conditions = build_preconditions(assumed)

    assert [field for field, _ in conditions] == list(assumed)
    for (field, condition), value in zip(conditions, assumed.values()):
        if value is None or isinstance(value, bool):
            assert condition.startswith("is.")
            assert condition in ("is.null", "is.true", "is.false")
        else:
            assert condition == f"eq.{value}"


@given(
    st.dictionaries(field_names, scalar_values, max_size=4),
    field_names,
    structured_values,
)
def test_property_4_structured_values_are_rejected(assumed: dict, field: str, value):
    """Property 4: Structured values are rejected.

    For any assumed state containing a dict or list value, building the
    preconditions fails with a fatal error naming the field.

    **Feature: supabase-replication, Property 4: Structured values are rejected**
    """
    assumed = {**assumed, field: value}

    with pytest.raises(UnsupportedFieldTypeError) as exc_info:
        build_preconditions(assumed)

    assert exc_info.value.field == field
    assert field in str(exc_info.value)
