"""Tests for structural workflow validation."""

import pytest
from agentgraph.errors import WorkflowValidationError
from agentgraph.workflow.compiler import load_workflow
from agentgraph.workflow.models import (
    DIALOGUE,
    DialogueConfig,
    Edge,
    Node,
    RetryPolicy,
    ScheduleWindow,
    WorkflowSpec,
)
from agentgraph.workflow.validator import validate, validate_or_raise

YAML_CYCLE = """
name: Cyclic
entryNode: A
nodes:
  - id: A
    agent: a-agent
  - id: B
    agent: b-agent
  - id: C
    agent: c-agent
edges:
  - from: A
    to: B
  - from: B
    to: C
  - from: C
    to: A
"""


def _spec(nodes, edges=(), entry="A", **kwargs):
    return WorkflowSpec(id="wf_test", name="Test", nodes=tuple(nodes), edges=tuple(edges),
                        entry_node=entry, **kwargs)


def test_valid_linear_workflow():
    spec = _spec(
        [Node(id="A", agent_ref="a-agent"), Node(id="B", agent_ref="b-agent")],
        [Edge("A", "B")],
    )

    result = validate(spec)

    assert result.valid is True
    assert result.errors == []
    assert validate_or_raise(spec).valid is True


def test_cycle_is_reported_in_traversal_order():
    spec = load_workflow(YAML_CYCLE, validate=False)

    result = validate(spec)

    assert result.valid is False
    assert "Cycle detected: A → B → C → A" in result.errors


def test_cycle_rejected_at_load_time():
    with pytest.raises(WorkflowValidationError, match="Cycle detected"):
        load_workflow(YAML_CYCLE)


def test_cycle_outside_entry_component_is_still_found():
    spec = _spec(
        [Node(id="X", agent_ref="x"), Node(id="P", agent_ref="p"), Node(id="Q", agent_ref="q")],
        [Edge("P", "Q"), Edge("Q", "P")],
        entry="X",
    )

    result = validate(spec)

    assert "Cycle detected: P → Q → P" in result.errors


def test_self_loop_is_a_cycle():
    spec = _spec([Node(id="A", agent_ref="a")], [Edge("A", "A")])

    assert "Cycle detected: A → A" in validate(spec).errors


def test_duplicate_ids_and_dangling_edges_accumulate():
    spec = _spec(
        [Node(id="A", agent_ref="a"), Node(id="A", agent_ref="b")],
        [Edge("A", "missing"), Edge("ghost", "A")],
    )

    errors = validate(spec).errors

    assert "Duplicate node id: A" in errors
    assert "Edge references non-existent node: missing" in errors
    assert "Edge references non-existent node: ghost" in errors


def test_required_fields():
    spec = WorkflowSpec(id="wf", name="", nodes=(), entry_node=None)

    errors = validate(spec).errors

    assert "Workflow name is required" in errors
    assert "Workflow must have at least one node" in errors
    assert "entryNode is required" in errors


def test_entry_node_must_exist():
    spec = _spec([Node(id="A", agent_ref="a")], entry="Z")

    assert "Entry node Z does not exist" in validate(spec).errors


def test_node_configuration_errors():
    spec = _spec([
        Node(id="A"),
        Node(id="B", kind="webhook", agent_ref="b"),
        Node(id="C", agent_ref="c", retry_policy=RetryPolicy(max_attempts=-1)),
        Node(id="D", agent_ref="d", schedule=ScheduleWindow(start_time="18:00", end_time="09:00")),
    ])

    errors = validate(spec).errors

    assert "Node A: agent nodes require an agent reference" in errors
    assert "Node B: unsupported node type: webhook" in errors
    assert "Node C: retry maxAttempts must not be negative" in errors
    assert "Node D schedule: startTime must be before endTime" in errors


def test_dialogue_configuration_errors():
    spec = _spec([
        Node(id="A", kind=DIALOGUE),
        Node(id="B", kind=DIALOGUE, dialogue=DialogueConfig(mode="sequential")),
        Node(id="C", kind=DIALOGUE, dialogue=DialogueConfig(mode="round-robin", participants=("x",))),
        Node(id="D", kind=DIALOGUE, dialogue=DialogueConfig(mode="debate", participants=("x",), max_turns=2)),
    ])

    errors = validate(spec).errors

    assert "Node A: dialogue nodes require a dialogue configuration" in errors
    assert "Node B: sequential dialogue requires predefined turns" in errors
    assert "Node C: round-robin dialogue requires maxTurns" in errors
    assert "Node D: unsupported dialogue mode: debate" in errors


def test_validate_or_raise_carries_all_errors():
    spec = _spec([Node(id="A"), Node(id="A", agent_ref="a")])

    with pytest.raises(WorkflowValidationError) as excinfo:
        validate_or_raise(spec)

    assert len(excinfo.value.errors) == 2
    assert str(excinfo.value).startswith("Workflow validation failed: ")
