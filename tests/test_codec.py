import pytest

from nodestore.storage.codec import Shape, decode_blob, encode_blob
from nodestore.storage.errors import CodecError, StorageError


@pytest.mark.parametrize(
    "tree, shape",
    [
        ({}, Shape.MAPPING),
        ([], Shape.SEQUENCE),
        (["recipe[nginx]", "role[web]"], Shape.SEQUENCE),
        (
            {"a": {"b": {"c": {"d": {"e": [1, 2.5, True, None, "x"]}}}}},
            Shape.MAPPING,
        ),
        ({"motd": "héllo wörld ☃", "日本": ["東京"]}, Shape.MAPPING),
    ],
)
def test_round_trip_preserves_tree(tree, shape):
    assert decode_blob(encode_blob(tree), shape) == tree


def test_round_trip_keeps_numeric_types_and_key_order():
    tree = {"z": 1, "a": 1.0, "m": {"port": 8080, "ratio": 0.5}}
    decoded = decode_blob(encode_blob(tree), Shape.MAPPING)

    assert list(decoded) == ["z", "a", "m"]
    assert type(decoded["z"]) is int
    assert type(decoded["a"]) is float
    assert type(decoded["m"]["port"]) is int


def test_encoded_blob_is_bytes():
    assert isinstance(encode_blob({"a": 1}), bytes)


def test_decode_accepts_text_and_memoryview_columns():
    assert decode_blob('{"a": [1]}', Shape.MAPPING) == {"a": [1]}
    assert decode_blob(memoryview(b'["x"]'), Shape.SEQUENCE) == ["x"]


def test_null_decodes_to_empty_container_of_requested_shape():
    assert decode_blob(None, Shape.MAPPING) == {}
    assert decode_blob(None, Shape.SEQUENCE) == []
    assert decode_blob(b"null", Shape.SEQUENCE) == []


def test_shape_mismatch_is_reported_with_field():
    with pytest.raises(CodecError) as excinfo:
        decode_blob(b'{"a": 1}', Shape.SEQUENCE, field="run_list")

    assert excinfo.value.field == "run_list"
    assert "run_list" in str(excinfo.value)


def test_truncated_blob_fails_decode():
    blob = encode_blob({"nginx": {"port": 8080}})

    with pytest.raises(CodecError) as excinfo:
        decode_blob(blob[:-3], Shape.MAPPING, field="override_attr")

    assert excinfo.value.detail == {"field": "override_attr"}


def test_invalid_utf8_and_unexpected_column_type_fail():
    with pytest.raises(CodecError):
        decode_blob(b"\xff\xfe{}", Shape.MAPPING, field="normal_attr")
    with pytest.raises(CodecError, match="unexpected column type int"):
        decode_blob(42, Shape.MAPPING, field="normal_attr")


def test_codec_error_is_a_storage_error():
    with pytest.raises(StorageError):
        decode_blob(b"{", Shape.MAPPING)


def test_encode_rejects_values_outside_json():
    with pytest.raises(CodecError) as excinfo:
        encode_blob({"when": object()}, field="normal")
    assert excinfo.value.field == "normal"

    with pytest.raises(CodecError):
        encode_blob({"ratio": float("nan")}, field="default")


def test_decode_rejects_non_finite_constants():
    with pytest.raises(CodecError):
        decode_blob(b'{"x": NaN}', Shape.MAPPING)
