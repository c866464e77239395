"""Property-based tests for the checkpoint codec.

**Feature: supabase-replication, Property 1: Checkpoint total order**
**Feature: supabase-replication, Property 2: Checkpoint extraction**
"""

import pytest
import structlog
from hypothesis import given, settings
from hypothesis import strategies as st
from pydantic import ValidationError

from supabase_replication.errors import SchemaContractError
from supabase_replication.models.checkpoint import Checkpoint, encode_checkpoint, is_after

log = structlog.stdlib.get_logger()

timestamps = st.datetimes().map(lambda value: value.isoformat())
keys = st.text(
    alphabet=st.characters(whitelist_categories=("Ll", "Lu", "Nd")), min_size=1, max_size=8
)


@st.composite
def checkpoint_strategy(draw: st.DrawFn) -> Checkpoint:
    return Checkpoint(modified=draw(timestamps), primary_key_value=draw(keys))


@given(st.lists(checkpoint_strategy(), min_size=2, max_size=20))
@settings(max_examples=100)
def test_property_1_checkpoints_sort_by_modified_then_key(checkpoints: list[Checkpoint]):
    """Property 1: Checkpoint total order.

    For any set of checkpoints, sorting them orders by modified timestamp and
    breaks ties on the primary key, and consecutive distinct checkpoints are
    strictly increasing.

    **Feature: supabase-replication, Property 1: Checkpoint total order**
    """
    log.info("test_property_1_checkpoints_sort_by_modified_then_key", count=len(checkpoints))

    ordered = sorted(checkpoints)

    for previous, current in zip(ordered, ordered[1:]):
        assert previous <= current
        assert (previous.modified, previous.primary_key_value) <= (
            current.modified,
            current.primary_key_value,
        )
        if previous != current:
            assert previous < current
            assert is_after(current, previous)
            assert not is_after(previous, current)


@given(timestamps, keys, keys)
def test_property_1_primary_key_breaks_timestamp_ties(modified: str, first_key: str, second_key: str):
    """Rows sharing a timestamp are ordered by primary key."""
    first = Checkpoint(modified=modified, primary_key_value=first_key)
    second = Checkpoint(modified=modified, primary_key_value=second_key)

    assert (first < second) == (first_key < second_key)
    assert (first == second) == (first_key == second_key)


@given(checkpoint_strategy())
def test_property_1_every_checkpoint_is_after_table_start(checkpoint: Checkpoint):
    assert is_after(checkpoint, None)
    assert not is_after(checkpoint, checkpoint)


@given(timestamps, st.one_of(keys, st.integers(min_value=0)), st.text(max_size=20))
@settings(max_examples=100)
def test_property_2_checkpoint_extracted_from_row(modified: str, key, name: str):
    """Property 2: Checkpoint extraction.

    For any row carrying the modified and primary key columns, the encoded
    checkpoint holds exactly those two values and survives serialization.

    **Feature: supabase-replication, Property 2: Checkpoint extraction**
    """
    row = {"id": key, "name": name, "_modified": modified}

    checkpoint = encode_checkpoint(row, "_modified", "id")

    assert checkpoint.modified == modified
    assert checkpoint.primary_key_value == key
    assert Checkpoint.from_dict(checkpoint.to_dict()) == checkpoint


def test_checkpoint_serializes_with_wire_field_names():
    checkpoint = Checkpoint(modified="2024-01-01T00:00:00+00:00", primary_key_value="1")

    assert checkpoint.to_dict() == {
        "modified": "2024-01-01T00:00:00+00:00",
        "primaryKeyValue": "1",
    }
    assert Checkpoint.from_dict({"modified": "x", "primaryKeyValue": 7}).primary_key_value == 7


@pytest.mark.parametrize("data", [None, {}])
def test_empty_checkpoint_data_means_table_start(data):
    assert Checkpoint.from_dict(data) is None


@pytest.mark.parametrize(
    "row",
    [
        {"id": "1", "name": "Alice"},
        {"id": "1", "name": "Alice", "_modified": None},
        {"name": "Alice", "_modified": "2024-01-01T00:00:00+00:00"},
    ],
)
def test_row_without_checkpoint_fields_is_schema_error(row):
    with pytest.raises(SchemaContractError):
        encode_checkpoint(row, "_modified", "id")


@pytest.mark.parametrize(
    "row",
    [
        {"id": "1", "_modified": 1700000000},
        {"id": 1.5, "_modified": "2024-01-01T00:00:00+00:00"},
        {"id": ["1"], "_modified": "2024-01-01T00:00:00+00:00"},
    ],
    ids=["numeric_modified", "float_key", "structured_key"],
)
def test_unusable_checkpoint_values_are_schema_errors(row):
    with pytest.raises(SchemaContractError):
        encode_checkpoint(row, "_modified", "id")


def test_checkpoint_is_immutable():
    checkpoint = Checkpoint(modified="2024-01-01T00:00:00+00:00", primary_key_value="1")

    with pytest.raises(ValidationError):
        checkpoint.modified = "2025-01-01T00:00:00+00:00"
