"""Unit tests for repost.domain.variables: pure substitution functions."""

from repost.domain.variables import (
    extract_variable_names,
    has_variables,
    merge_variables,
    missing_variables,
    substitute,
    substitute_in_map,
)
from repost.models import Environment


class TestMergeVariables:
    def test_later_environment_wins(self):
        """
        Given two environments defining the same key
        When merge_variables is called in activation order
        Then the value from the later environment is kept
        """
        base = Environment(name="base", variables={"host": "base.example", "token": "t1"})
        local = Environment(name="local", variables={"host": "localhost"})

        merged = merge_variables([base, local])

        assert merged == {"host": "localhost", "token": "t1"}

    def test_order_reversed_changes_winner(self):
        """
        Given the same two environments in the opposite order
        When merge_variables is called
        Then the other value wins
        """
        base = Environment(name="base", variables={"host": "base.example"})
        local = Environment(name="local", variables={"host": "localhost"})

        assert merge_variables([local, base])["host"] == "base.example"

    def test_no_environments_gives_empty_map(self):
        """
        Given no active environments
        When merge_variables is called
        Then an empty dict is returned
        """
        assert merge_variables([]) == {}


class TestSubstitute:
    def test_replaces_known_token(self):
        """
        Given a text containing a defined variable
        When substitute is called
        Then the token is replaced by its value
        """
        result = substitute("https://{{host}}/users", {"host": "api.test"})

        assert result == "https://api.test/users"

    def test_unknown_token_is_kept_verbatim(self):
        """
        Given a token with no matching variable
        When substitute is called
        Then the token is left unchanged, braces included
        """
        assert substitute("{{missing}}/x", {"other": "1"}) == "{{missing}}/x"

    def test_whitespace_inside_braces_is_ignored(self):
        """
        Given a token with spaces around the name
        When substitute is called
        Then the stripped name is looked up
        """
        assert substitute("{{ host }}", {"host": "h"}) == "h"

    def test_empty_value_substitutes(self):
        """
        Given a variable whose value is the empty string
        When substitute is called
        Then the token is replaced by nothing
        """
        assert substitute("a{{x}}b", {"x": ""}) == "ab"

    def test_substitution_is_single_pass(self):
        """
        Given a variable whose value itself contains a token
        When substitute is called
        Then the inserted token is not expanded again
        """
        variables = {"a": "{{b}}", "b": "deep"}

        assert substitute("{{a}}", variables) == "{{b}}"

    def test_no_variables_returns_text_unchanged(self):
        """
        Given an empty variable map
        When substitute is called
        Then the text is returned as-is
        """
        assert substitute("{{host}}", {}) == "{{host}}"

    def test_empty_token_never_matches(self):
        """
        Given the empty token {{}}
        When substitute is called
        Then it is left as-is
        """
        assert substitute("a{{}}b", {"": "x", "a": "1"}) == "a{{}}b"

    def test_plain_text_is_unchanged(self):
        """
        Given a text without tokens
        When substitute is called with any variables
        Then the text is returned unchanged
        """
        assert substitute("no vars here", {"vars": "x"}) == "no vars here"

    def test_repeated_token_is_replaced_everywhere(self):
        """
        Given the same token appearing twice
        When substitute is called
        Then both occurrences are replaced
        """
        assert substitute("{{v}}-{{v}}", {"v": "1"}) == "1-1"


class TestSubstituteInMap:
    def test_values_substituted_keys_kept(self):
        """
        Given a mapping with templated keys and values
        When substitute_in_map is called
        Then only the values are substituted
        """
        result = substitute_in_map({"{{k}}": "{{v}}"}, {"k": "key", "v": "value"})

        assert result == {"{{k}}": "value"}


class TestInspection:
    def test_has_variables(self):
        """
        Given texts with and without tokens
        When has_variables is called
        Then it reports whether a token is present
        """
        assert has_variables("Bearer {{token}}") is True
        assert has_variables("Bearer abc") is False
        assert has_variables("") is False

    def test_extract_names_in_order_with_duplicates(self):
        """
        Given a text with repeated and padded tokens
        When extract_variable_names is called
        Then names are returned stripped, in order of appearance
        """
        assert extract_variable_names("{{a}}/{{ b }}/{{a}}") == ["a", "b", "a"]

    def test_missing_variables(self):
        """
        Given a text referencing one defined and one undefined variable
        When missing_variables is called
        Then only the undefined name is returned
        """
        assert missing_variables("{{host}}/{{path}}", {"host": "h"}) == ["path"]
