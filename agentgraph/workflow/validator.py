""" Structural validation of a WorkflowSpec. """

from dataclasses import dataclass, field
from typing import Dict, List

from ..errors import WorkflowValidationError
from .gates import validate_schedule, validate_tick_config
from .models import AGENT, DIALOGUE, DIALOGUE_MODES, NODE_KINDS, SEQUENTIAL, Node, WorkflowSpec


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)

    def raise_for_errors(self) -> None:
        if not self.valid:
            raise WorkflowValidationError(self.errors)


def validate(spec: WorkflowSpec) -> ValidationResult:
    """
    Check a workflow for structural problems, accumulating every failure:
    required fields, unique node ids, dangling edges, cycles, then
    per-node configuration.
    """
    errors: List[str] = []
    node_ids = [node.id for node in spec.nodes]
    known = set(node_ids)

    # 1. required fields
    if not spec.name:
        errors.append("Workflow name is required")
    if not spec.nodes:
        errors.append("Workflow must have at least one node")
    if not spec.entry_node:
        errors.append("entryNode is required")
    elif spec.entry_node not in known:
        errors.append(f"Entry node {spec.entry_node} does not exist")

    # 2. unique ids
    seen = set()
    for node_id in node_ids:
        if node_id in seen:
            errors.append(f"Duplicate node id: {node_id}")
        seen.add(node_id)

    # 3. edges resolve
    for edge in spec.edges:
        if edge.src not in known:
            errors.append(f"Edge references non-existent node: {edge.src}")
        if edge.dest not in known:
            errors.append(f"Edge references non-existent node: {edge.dest}")

    # 4. cycles
    errors.extend(_find_cycles(node_ids, spec))

    # 5. node and workflow level configuration
    for node in spec.nodes:
        errors.extend(_validate_node(node))
    if spec.execution is not None:
        if spec.execution.schedule is not None:
            errors.extend(f"Workflow schedule: {e}" for e in validate_schedule(spec.execution.schedule))
        if spec.execution.tick is not None:
            errors.extend(f"Workflow ticks: {e}" for e in validate_tick_config(spec.execution.tick))
        if spec.execution.rounds is not None and spec.execution.rounds <= 0:
            errors.append("Workflow rounds must be positive")

    return ValidationResult(valid=not errors, errors=errors)


def _find_cycles(node_ids: List[str], spec: WorkflowSpec) -> List[str]:
    """
    DFS with a recursion stack over every component. A back edge to a node
    on the stack reports the cycle path in traversal order.
    """
    adjacency: Dict[str, List[str]] = {node_id: [] for node_id in node_ids}
    for edge in spec.edges:
        if edge.src in adjacency and edge.dest in adjacency:
            adjacency[edge.src].append(edge.dest)

    errors: List[str] = []
    visited = set()
    stack: List[str] = []
    on_stack = set()

    def _visit(node_id: str) -> None:
        visited.add(node_id)
        stack.append(node_id)
        on_stack.add(node_id)
        for neighbor in adjacency[node_id]:
            if neighbor in on_stack:
                cycle = stack[stack.index(neighbor):] + [neighbor]
                errors.append("Cycle detected: " + " → ".join(cycle))
            elif neighbor not in visited:
                _visit(neighbor)
        stack.pop()
        on_stack.discard(node_id)

    for node_id in adjacency:
        if node_id not in visited:
            _visit(node_id)
    return errors


def _validate_node(node: Node) -> List[str]:
    errors: List[str] = []
    prefix = f"Node {node.id}"

    if node.kind not in NODE_KINDS:
        errors.append(f"{prefix}: unsupported node type: {node.kind}")
    if node.kind == AGENT and not node.agent_ref:
        errors.append(f"{prefix}: agent nodes require an agent reference")
    if node.kind == DIALOGUE:
        errors.extend(f"{prefix}: {e}" for e in _validate_dialogue(node))

    if node.retry_policy is not None:
        if node.retry_policy.max_attempts < 0:
            errors.append(f"{prefix}: retry maxAttempts must not be negative")
        if node.retry_policy.backoff_ms < 0:
            errors.append(f"{prefix}: retry backoffMs must not be negative")
    if node.schedule is not None:
        errors.extend(f"{prefix} schedule: {e}" for e in validate_schedule(node.schedule))
    if node.tick is not None:
        errors.extend(f"{prefix} ticks: {e}" for e in validate_tick_config(node.tick))
    return errors


def _validate_dialogue(node: Node) -> List[str]:
    dialogue = node.dialogue
    if dialogue is None:
        return ["dialogue nodes require a dialogue configuration"]

    errors: List[str] = []
    if dialogue.mode not in DIALOGUE_MODES:
        errors.append(f"unsupported dialogue mode: {dialogue.mode}")
    if dialogue.mode == SEQUENTIAL and not dialogue.turns:
        errors.append("sequential dialogue requires predefined turns")
    if dialogue.mode != SEQUENTIAL and not dialogue.participants:
        errors.append(f"{dialogue.mode} dialogue requires participants")
    if dialogue.max_turns is not None and dialogue.max_turns <= 0:
        errors.append("maxTurns must be positive")
    if dialogue.mode != SEQUENTIAL and dialogue.max_turns is None and not dialogue.turns:
        errors.append(f"{dialogue.mode} dialogue requires maxTurns")
    return errors


def validate_or_raise(spec: WorkflowSpec) -> ValidationResult:
    result = validate(spec)
    result.raise_for_errors()
    return result
