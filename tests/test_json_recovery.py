"""Tests for strict and bracket-completion JSON parsing."""

from canvasagent.agent.json_recovery import (
    NOT_PARSED,
    completion_suffix,
    line_actions_envelope,
    parse_recovered,
    parse_strict,
    strip_code_fence,
)


def test_parse_strict_returns_sentinel_on_failure():
    assert parse_strict('{"actions": [') is NOT_PARSED
    assert parse_strict("") is NOT_PARSED
    assert parse_strict("null") is None
    assert parse_strict('{"a": 1}') == {"a": 1}


def test_completion_suffix_closes_open_structures():
    assert completion_suffix('{"actions": [{"kind": "no') == '"}]}'
    assert completion_suffix('{"actions": [') == "]}"
    assert completion_suffix('{"a": "x}') == '"}'


def test_completion_suffix_ignores_brackets_inside_strings():
    assert completion_suffix('{"text": "a [b {c') == '"}'


def test_completion_suffix_rejects_unbalanced_and_mid_escape():
    assert completion_suffix('{"a": 1}}') is None
    assert completion_suffix("[}") is None
    assert completion_suffix('{"text": "abc\\') is None


def test_parse_recovered_returns_partial_document():
    assert parse_recovered('{"actions": [{"kind": "note", "text": "hel') == {
        "actions": [{"kind": "note", "text": "hel"}]
    }


def test_parse_recovered_fails_on_dangling_key():
    assert parse_recovered('{"actions": [{"kind": "note", "text"') is NOT_PARSED


def test_strip_code_fence():
    assert strip_code_fence('```json\n{"actions": []}\n```') == '{"actions": []}'
    assert strip_code_fence('```\n{"actions": [') == '{"actions": ['
    assert strip_code_fence('{"actions": []}') == '{"actions": []}'


def test_line_actions_envelope_collects_prefixed_objects():
    text = 'Sure!\n[ACTION]: {"kind": "a", "x": 1}\n[ACTION]:{"kind": "b", "x": 2} done'
    assert line_actions_envelope(text) == '{"actions": [{"kind": "a", "x": 1}, {"kind": "b", "x": 2}]}'


def test_line_actions_envelope_leaves_streaming_tail_open():
    envelope = line_actions_envelope('[ACTION]: {"kind": "a", "x": 1}\n[ACTION]: {"kind": "b", "x": 2')

    assert envelope == '{"actions": [{"kind": "a", "x": 1}, {"kind": "b", "x": 2'
    assert parse_strict(envelope) is NOT_PARSED
    assert parse_recovered(envelope) == {"actions": [{"kind": "a", "x": 1}, {"kind": "b", "x": 2}]}


def test_line_actions_envelope_skips_broken_segments():
    text = '[ACTION]: {"kind": "a", "x": }\n[ACTION]: not json\n[ACTION]: {"kind": "b", "x": 2}'
    assert line_actions_envelope(text) == '{"actions": [{"kind": "b", "x": 2}]}'


def test_line_actions_envelope_ignores_json_documents_and_plain_text():
    assert line_actions_envelope('{"actions": [{"kind": "a", "x": 1}]}') is None
    assert line_actions_envelope('  [{"kind": "a"}]') is None
    assert line_actions_envelope("No actions here.") is None
