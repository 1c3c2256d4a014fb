"""Tests for template resolution."""

import pytest
from agentgraph.errors import CircularTemplateReferenceError, TemplateResolutionError
from agentgraph.workflow.templates import find_references, lookup, resolve, resolve_value


def test_plain_text_is_returned_unchanged():
    """Strings without markers come back as-is, whatever the context."""
    assert resolve("plain text", {}) == "plain text"
    assert resolve("plain text", {"plain": "x"}) == "plain text"
    assert resolve("", {"a": 1}) == ""


def test_negative_index_reads_from_the_end():
    context = {"history": ["x", "y", "z"]}

    assert resolve("{{history[-1]}}", context) == "z"
    assert resolve("{{history[0]}}", context) == "x"
    assert resolve("{{ history[-2] }}", context) == "y"


def test_multiple_markers_resolve_independently():
    context = {"inputs": {"name": "Ada", "lang": "Python"}}

    result = resolve("{{inputs.name}} writes {{inputs.lang}}", context)

    assert result == "Ada writes Python"


def test_nested_paths_and_chained_indexes():
    context = {
        "fetch": {"output": {"items": [{"title": "first"}, {"title": "second"}]}},
        "grid": [[1, 2], [3, 4]],
    }

    assert resolve("{{fetch.output.items[1].title}}", context) == "second"
    assert resolve("{{grid[1][-1]}}", context) == "4"


def test_non_string_values_are_serialized_stably():
    context = {"n": 3, "f": 1.5, "yes": True, "no": False, "nothing": None, "obj": {"k": [1, "a"]}}

    assert resolve("{{n}}", context) == "3"
    assert resolve("{{f}}", context) == "1.5"
    assert resolve("{{yes}}/{{no}}", context) == "true/false"
    assert resolve("{{nothing}}", context) == "null"
    assert resolve("{{obj}}", context) == '{"k": [1, "a"]}'


def test_missing_path_names_the_exact_path():
    context = {"inputs": {"topic": "AI"}}

    with pytest.raises(TemplateResolutionError) as excinfo:
        resolve("About {{inputs.subject}}", context)

    assert excinfo.value.path == "inputs.subject"
    assert "inputs.subject" in str(excinfo.value)


def test_index_out_of_range_is_unresolved():
    with pytest.raises(TemplateResolutionError, match=r"history\[5\]"):
        resolve("{{history[5]}}", {"history": ["only"]})


def test_indexing_a_string_is_unresolved():
    with pytest.raises(TemplateResolutionError):
        resolve("{{word[0]}}", {"word": "abc"})


def test_resolved_values_are_inserted_verbatim():
    context = {
        "draft": {"output": "Use {{name}} in your Jinja template"},
        "name": "Grace",
    }

    assert resolve("Review: {{draft.output}}", context) == "Review: Use {{name}} in your Jinja template"


def test_missing_path_inside_a_value_is_not_looked_up():
    context = {"reply": {"output": "template is {{user.name}}"}}

    assert resolve("{{reply.output}}", context) == "template is {{user.name}}"


def test_repeated_path_in_one_pass_is_circular():
    context = {"summarize": {"output": "short"}}

    with pytest.raises(CircularTemplateReferenceError) as excinfo:
        resolve("{{summarize.output}} and again {{ summarize.output }}", context)

    assert excinfo.value.chain == ["summarize.output", "summarize.output"]
    assert "summarize.output -> summarize.output" in str(excinfo.value)


def test_distinct_paths_are_not_circular():
    context = {"a": {"output": "x"}, "b": {"output": "y"}}

    assert resolve("{{a.output}}{{b.output}}", context) == "xy"


def test_resolve_value_walks_containers():
    context = {"inputs": {"q": "weather"}}
    value = {"query": "{{inputs.q}}", "tags": ["{{inputs.q}}", 7], "limit": 10}

    assert resolve_value(value, context) == {"query": "weather", "tags": ["weather", 7], "limit": 10}


def test_lookup_returns_raw_value():
    context = {"node": {"output": {"score": 0.9}}}

    assert lookup("node.output", context) == {"score": 0.9}


def test_find_references_in_order():
    assert find_references("{{a.b}} and {{ c[0] }}") == ["a.b", "c[0]"]
    assert find_references("no markers") == []
