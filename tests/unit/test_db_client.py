"""Unit tests for filter and sort parsing in db_client."""

import pytest

from src.core import db_client


@pytest.mark.unit
class TestParseFilter:
    """Tests for parse_filter."""

    def test_empty_filter(self):
        assert db_client.parse_filter("") == ("", [])

    def test_single_comparison(self):
        where, params = db_client.parse_filter('user_id = "7"')

        assert where == "user_id = ?"
        assert params == [7]

    def test_and_conditions(self):
        where, params = db_client.parse_filter('id = "3" && user_id = "7"')

        assert where == "id = ? AND user_id = ?"
        assert params == [3, 7]

    @pytest.mark.parametrize(
        ("query", "expected"),
        [
            ('done != "true"', "done != ?"),
            ('created_at >= "2026-01-01"', "created_at >= ?"),
            ('created_at <= "2026-01-01"', "created_at <= ?"),
            ('created_at > "2026-01-01"', "created_at > ?"),
            ('created_at < "2026-01-01"', "created_at < ?"),
        ],
    )
    def test_two_character_operators_win(self, query, expected):
        where, _ = db_client.parse_filter(query)

        assert where == expected

    def test_boolean_values(self):
        _, params = db_client.parse_filter('done = "false"')

        assert params == [False]

    def test_invalid_syntax_raises(self):
        with pytest.raises(ValueError, match="Invalid filter syntax"):
            db_client.parse_filter("user_id 7")

    def test_injection_attempt_is_parameterized(self):
        """Values never end up in the SQL text."""
        sanitized = db_client.sanitize_param("x; DROP TABLE tasks; --")
        where, params = db_client.parse_filter(f'title = "{sanitized}"')

        assert where == "title = ?"
        assert params == ["x; DROP TABLE tasks; --"]

    @pytest.mark.parametrize(
        "value",
        [
            "o'brien@example.com",
            'say "hi"',
            "back\\slash",
            "a && b = \"c\"",
            "(parens)",
            "line\nbreak",
        ],
    )
    def test_sanitized_values_survive_parsing(self, value):
        """Any value escaped with sanitize_param comes back unchanged."""
        where, params = db_client.parse_filter(f'email = "{db_client.sanitize_param(value)}" && user_id = "7"')

        assert where == "email = ? AND user_id = ?"
        assert params == [value, 7]

    def test_single_quoted_value_may_hold_double_quote(self):
        _, params = db_client.parse_filter("title = 'say \"hi\"'")

        assert params == ['say "hi"']

    @pytest.mark.parametrize(
        "query",
        ['title = "unterminated', 'title = "a" || id = "1"', 'title = "a" &&', 'title ~ "a"'],
    )
    def test_malformed_filters_raise(self, query):
        with pytest.raises(ValueError, match="Invalid filter syntax"):
            db_client.parse_filter(query)


@pytest.mark.unit
class TestParseSort:
    """Tests for parse_sort."""

    def test_default_for_empty(self):
        assert db_client.parse_sort("") == "id ASC"

    def test_prefixed_terms(self):
        assert db_client.parse_sort("-created_at,-id") == "created_at DESC, id DESC"

    def test_plus_prefix_and_bare_field(self):
        assert db_client.parse_sort("+title, done") == "title ASC, done ASC"

    @pytest.mark.parametrize("sort", ["created_at; DROP TABLE tasks", "-", "created_at DESC"])
    def test_invalid_falls_back_to_default(self, sort):
        assert db_client.parse_sort(sort) == "id ASC"


@pytest.mark.unit
class TestConvertRecord:
    """Tests for row conversion."""

    def test_ids_become_strings_and_flags_booleans(self):
        record = {"id": 5, "user_id": 2, "done": 1, "title": "A", "type": None}

        converted = db_client._convert_record("tasks", record)

        assert converted == {"id": "5", "user_id": "2", "done": True, "title": "A", "type": None}

    def test_non_task_collections_keep_integers(self):
        converted = db_client._convert_record("users", {"id": 1, "logins": 3})

        assert converted == {"id": "1", "logins": 3}

    def test_invalid_collection_name(self):
        with pytest.raises(ValueError, match="Invalid collection name"):
            db_client._validate_collection_name("tasks; DROP TABLE users")
