import pytest

from datalayer.exceptions.base import ValidationError
from datalayer.validators.config_validators import split_codes, to_lowercase, to_uppercase
from datalayer.validators.input_validators import is_valid_uuid, validate_id, validate_payload


@pytest.mark.parametrize(
    "value, expected",
    [
        ("123e4567-e89b-42d3-a456-426614174000", True),
        ("123E4567-E89B-12D3-A456-426614174000", True),
        ("123e4567-e89b-62d3-a456-426614174000", False),  # version 6
        ("123e4567-e89b-42d3-c456-426614174000", False),  # variant nibble
        ("123e4567e89b42d3a456426614174000", False),
        (12345, False),
    ],
)
def test_is_valid_uuid(value, expected):
    assert is_valid_uuid(value) is expected


def test_validate_id_messages():
    with pytest.raises(ValidationError, match="^id is required$"):
        validate_id("  ")
    with pytest.raises(ValidationError, match="Invalid post_id format"):
        validate_id("42", id_column="post_id")


def test_validate_id_accepts_any_non_empty_value_without_uuid_check():
    validate_id(42, uuid_ids=False)
    validate_id("slug-1", uuid_ids=False)


@pytest.mark.parametrize("data", [None, {}])
def test_validate_payload_rejects_empty(data):
    with pytest.raises(ValidationError, match="Data is required for update"):
        validate_payload(data, operation="update")


def test_config_normalizers():
    assert to_uppercase("info") == "INFO"
    assert to_lowercase("JSON") == "json"
    assert to_uppercase(None) is None
    assert split_codes(" timeout,,server_error ") == ["timeout", "server_error"]
