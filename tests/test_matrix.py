import pytest

from flakeci.config.subflake import SubflakesConfig
from flakeci.errors import UnknownSubflake
from flakeci.matrix import MatrixRow, matrix, matrix_json

SUBFLAKES = SubflakesConfig.model_validate({
    "root": {},
    "linux-only": {"systems": ["x86_64-linux", "aarch64-linux"]},
    "mac-only": {"systems": ["aarch64-darwin"]},
    "disabled": {"skip": True},
})


def test_cross_product_filtered_by_whitelist():
    rows = matrix(["x86_64-linux", "aarch64-darwin"], SUBFLAKES)
    assert rows == [
        MatrixRow("x86_64-linux", "disabled"),
        MatrixRow("x86_64-linux", "linux-only"),
        MatrixRow("x86_64-linux", "root"),
        MatrixRow("aarch64-darwin", "disabled"),
        MatrixRow("aarch64-darwin", "mac-only"),
        MatrixRow("aarch64-darwin", "root"),
    ]


def test_system_order_does_not_change_rows():
    systems = ["x86_64-linux", "aarch64-darwin", "aarch64-linux"]
    forward = matrix(systems, SUBFLAKES)
    backward = matrix(list(reversed(systems)), SUBFLAKES)
    assert set(forward) == set(backward)
    assert len(forward) == len(backward)


def test_only_one_subflake():
    rows = matrix(["x86_64-linux", "aarch64-darwin"], SUBFLAKES, only="root")
    assert [r.system for r in rows] == ["x86_64-linux", "aarch64-darwin"]
    assert {r.subflake for r in rows} == {"root"}


def test_unknown_subflake_filter():
    with pytest.raises(UnknownSubflake):
        matrix(["x86_64-linux"], SUBFLAKES, only="nope")
    assert matrix(["x86_64-linux"], SUBFLAKES, only="nope", strict_selection=False) == []


def test_matrix_json():
    rows = matrix(["aarch64-darwin"], SubflakesConfig.default())
    assert matrix_json(rows) == {"include": [{"system": "aarch64-darwin", "subflake": "<root>"}]}
