#!/usr/bin/env python3
"""
Tests for pulling JSON objects out of model output.

Run with: pytest tests/test_json_extract.py -v
"""

import pytest

from tritrack.json_extract import JSONExtractionError, extract_json_object, find_balanced_spans


class TestExtractJsonObject:
    """Recovering the payload from noisy text."""

    def test_plain_json(self):
        assert extract_json_object('{"workouts": []}') == {'workouts': []}

    def test_markdown_fence(self):
        text = 'Here is the plan:\n```json\n{"startDate": "2025-02-24", "workouts": [{"date": "2025-02-24"}]}\n```'
        result = extract_json_object(text)

        assert result['startDate'] == '2025-02-24'
        assert result['workouts'] == [{'date': '2025-02-24'}]

    def test_skips_stray_braces_before_payload(self):
        text = 'Format: {date, discipline}. Result: {"workouts": [{"discipline": "run"}]}'
        assert extract_json_object(text) == {'workouts': [{'discipline': 'run'}]}

    def test_braces_inside_strings(self):
        text = 'Output: {"title": "Intervals {4x800}", "note": "use } carefully"} done'
        result = extract_json_object(text)

        assert result == {'title': 'Intervals {4x800}', 'note': 'use } carefully'}

    def test_escaped_quotes_inside_strings(self):
        text = 'x {"title": "The \\"long\\" run {z2}"} y'
        assert extract_json_object(text) == {'title': 'The "long" run {z2}'}

    def test_first_decodable_object_wins(self):
        assert extract_json_object('{"a": 1} and {"b": 2}') == {'a': 1}

    @pytest.mark.parametrize('text', ['', '   ', None])
    def test_empty(self, text):
        with pytest.raises(JSONExtractionError, match='Empty model response'):
            extract_json_object(text)

    def test_no_object(self):
        with pytest.raises(JSONExtractionError, match='No JSON object found'):
            extract_json_object('I could not read this image.')

    def test_unterminated_object(self):
        with pytest.raises(JSONExtractionError, match='No JSON object found'):
            extract_json_object('{"workouts": [{"date": "2025-02-24"')

    def test_undecodable_spans(self):
        with pytest.raises(JSONExtractionError, match='Could not parse JSON object'):
            extract_json_object('{bad} and {worse}')

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            extract_json_object('nothing here')


class TestFindBalancedSpans:
    """Top-level brace spans."""

    def test_spans(self):
        assert list(find_balanced_spans('a {b} c {d{e}}')) == [(2, 5), (8, 14)]

    def test_unbalanced_close_ignored(self):
        assert list(find_balanced_spans('} {x}')) == [(2, 5)]

    def test_no_spans(self):
        assert list(find_balanced_spans('plain text')) == []
