"""Tests for fluent_request.url.

Tests cover:
- Path segment joining with slash trimming
- Query string parsing (bare keys, duplicates, percent-decoding)
- Canonical URL assembly (sorted query, leading slash, escaping)
- Splitting a full URL back into components
"""

from fluent_request.url import (
    combine_path_components,
    create_url,
    encode_values,
    parse_query_string,
    split_url,
)


class TestCombinePathComponents:
    def test_strips_one_leading_and_trailing_slash(self) -> None:
        assert combine_path_components("/api/", "/v1/", "widgets") == "api/v1/widgets"

    def test_only_one_separator_is_stripped(self) -> None:
        assert combine_path_components("a//", "b") == "a//b"

    def test_no_trailing_separator_after_last_segment(self) -> None:
        assert combine_path_components("a", "b/") == "a/b"

    def test_single_component(self) -> None:
        assert combine_path_components("/only/") == "only"

    def test_no_components(self) -> None:
        assert combine_path_components() == ""


class TestParseQueryString:
    def test_key_value_pairs(self) -> None:
        assert parse_query_string("a=1&b=2") == {"a": ["1"], "b": ["2"]}

    def test_bare_key_maps_to_empty_string(self) -> None:
        assert parse_query_string("foo&bar=1") == {"foo": [""], "bar": ["1"]}

    def test_last_duplicate_wins(self) -> None:
        assert parse_query_string("a=1&a=2") == {"a": ["2"]}

    def test_values_are_percent_decoded(self) -> None:
        assert parse_query_string("q=hello%20world+x") == {"q": ["hello world x"]}

    def test_splits_on_first_equals_only(self) -> None:
        assert parse_query_string("expr=a=b") == {"expr": ["a=b"]}

    def test_empty_string(self) -> None:
        assert parse_query_string("") == {}


class TestEncodeValues:
    def test_keys_sorted(self) -> None:
        assert encode_values({"b": ["2"], "a": ["1"]}) == "a=1&b=2"

    def test_repeated_values_keep_order(self) -> None:
        assert encode_values({"k": ["a b", "c"]}) == "k=a+b&k=c"

    def test_empty(self) -> None:
        assert encode_values({}) == ""
        assert encode_values(None) == ""


class TestCreateURL:
    def test_full_url_with_sorted_query(self) -> None:
        url = create_url("https", "example.com", "api/v1", {"b": ["2"], "a": ["1"]})
        assert url == "https://example.com/api/v1?a=1&b=2"

    def test_host_only(self) -> None:
        assert create_url("http", "localhost:8080", "") == "http://localhost:8080"

    def test_path_is_escaped(self) -> None:
        assert create_url("http", "example.com", "/a b/c") == "http://example.com/a%20b/c"

    def test_bare_query_key_renders_with_equals(self) -> None:
        assert create_url("http", "h", "/p", {"foo": [""]}) == "http://h/p?foo="

    def test_stable_across_calls(self) -> None:
        query = {"z": ["1"], "a": ["2", "3"]}
        first = create_url("http", "example.com", "/x", query)
        assert create_url("http", "example.com", "/x", query) == first


class TestSplitURL:
    def test_components(self) -> None:
        assert split_url("https://example.com:8443/api/users?id=7") == (
            "https",
            "example.com:8443",
            "/api/users",
            {"id": ["7"]},
        )

    def test_path_is_unescaped(self) -> None:
        _, _, path, _ = split_url("http://example.com/a%20b")
        assert path == "/a b"

    def test_no_query(self) -> None:
        assert split_url("http://example.com")[3] == {}
