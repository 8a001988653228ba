"""Tests for open handler query parameter parsing."""

import pytest

from diagnostipy.adapters.frameworks.query_params import (
    DEFAULT_MAX_ITEMS,
    MAX_ITEMS_LIMIT,
    _parse_filter_params,
    _parse_id_param,
    _parse_max_param,
    _parse_offset_param,
    _parse_op_param,
    parse_query_string,
)

pytestmark = [pytest.mark.asgi, pytest.mark.tier(0)]


class TestParseQueryString:
    def test_bytes_and_str(self) -> None:
        assert parse_query_string(b"op=get&id=1") == {"op": ["get"], "id": ["1"]}
        assert parse_query_string("op=find") == {"op": ["find"]}

    def test_invalid_utf8_is_replaced(self) -> None:
        params = parse_query_string(b"id=\xff")

        assert params["id"] == ["\ufffd"]

    def test_empty(self) -> None:
        assert parse_query_string(b"") == {}


class TestOpParam:
    @pytest.mark.parametrize(
        ("params", "expected"),
        [
            ({}, "find"),
            ({"op": ["GET"]}, "get"),
            ({"op": [" clear "]}, "clear"),
            ({"op": ["drop"]}, None),
        ],
    )
    def test_parse_op(self, params: dict[str, list[str]], expected: str | None) -> None:
        assert _parse_op_param(params) == expected


class TestIdParam:
    def test_present(self) -> None:
        assert _parse_id_param({"id": ["abc"]}) == "abc"

    @pytest.mark.parametrize("params", [{}, {"id": ["  "]}, {"id": []}])
    def test_missing_or_blank(self, params: dict[str, list[str]]) -> None:
        assert _parse_id_param(params) is None


class TestPaginationParams:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (None, DEFAULT_MAX_ITEMS),
            ("5", 5),
            ("abc", DEFAULT_MAX_ITEMS),
            ("-1", DEFAULT_MAX_ITEMS),
            ("100000", MAX_ITEMS_LIMIT),
        ],
    )
    def test_max(self, raw: str | None, expected: int) -> None:
        params = {} if raw is None else {"max": [raw]}

        assert _parse_max_param(params) == expected

    def test_offset(self) -> None:
        assert _parse_offset_param({"offset": ["20"]}) == 20
        assert _parse_offset_param({"offset": ["x"]}) == 0


class TestFilterParams:
    def test_collects_bracketed_filters(self) -> None:
        params = parse_query_string(b"filter[method]=GET&filter[path]=/users&filter[]=x&op=find")

        assert _parse_filter_params(params) == {"method": "GET", "path": "/users"}
