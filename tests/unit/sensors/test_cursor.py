"""
Unit tests for the landing sensor cursor helpers.
"""

import json

from services.dagster.gated_pipeline.sensors.cursor import (
    MAX_CURSOR_ENTRIES,
    build_cursor,
    merge_seen,
    object_token,
    parse_cursor,
)


def test_object_token():
    assert object_token("raw/movies.csv", "abc") == "raw/movies.csv@abc"
    assert object_token("raw/movies.csv", "") == "raw/movies.csv"


def test_parse_empty_cursor():
    assert parse_cursor(None) == []
    assert parse_cursor("") == []


def test_parse_round_trips_build():
    tokens = ["raw/a.csv@1", "raw/b.csv@2"]
    assert parse_cursor(build_cursor(tokens)) == tokens


def test_parse_drops_blank_duplicate_and_non_string_entries():
    cursor = json.dumps({"v": 1, "seen": ["raw/a.csv@1", "", "raw/a.csv@1", 7, "raw/b.csv@2"]})
    assert parse_cursor(cursor) == ["raw/a.csv@1", "raw/b.csv@2"]


def test_parse_foreign_or_broken_cursor():
    assert parse_cursor("raw/a.csv,raw/b.csv") == []
    assert parse_cursor(json.dumps({"v": 2, "seen": ["x"]})) == []
    assert parse_cursor(json.dumps(["x"])) == []


def test_merge_moves_repeats_to_end():
    assert merge_seen(["a", "b", "c"], ["b", "d"]) == ["a", "c", "b", "d"]


def test_build_caps_to_most_recent():
    tokens = [f"raw/{i}.csv@e" for i in range(MAX_CURSOR_ENTRIES + 10)]

    data = json.loads(build_cursor(tokens))

    assert data["v"] == 1
    assert len(data["seen"]) == MAX_CURSOR_ENTRIES
    assert data["seen"][-1] == tokens[-1]
    assert data["seen"][0] == tokens[10]
