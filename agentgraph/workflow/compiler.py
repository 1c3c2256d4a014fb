""" Load and validate a WorkflowSpec from YAML. """

import logging
import uuid
from pathlib import Path
from typing import Optional, Union

import yaml

from ..errors import WorkflowValidationError
from .models import (
    DialogueConfig,
    DialogueTurn,
    Edge,
    ExecutionConfig,
    InputDeclaration,
    Node,
    RetryPolicy,
    ScheduleWindow,
    TickConfig,
    WorkflowSpec,
)
from .schema import (
    DialogueSpec,
    NodeSpec,
    OutputSpec,
    ScheduleSpec,
    TickSpec,
    WorkflowDocument,
    validate_document,
)
from .validator import validate_or_raise

logger = logging.getLogger(__name__)


def load_workflow(yaml_text: str, *, validate: bool = True) -> WorkflowSpec:
    """
    Load a WorkflowSpec from a YAML string.

    Nodes may be written as a list (each with an `id`) or as a mapping
    keyed by node id. Raises WorkflowValidationError on any problem.
    """
    try:
        data = yaml.safe_load(yaml_text)
    except yaml.YAMLError as e:
        raise WorkflowValidationError([f"Failed to parse YAML: {e}"]) from e

    if not isinstance(data, dict):
        raise WorkflowValidationError(["Workflow document must be a mapping"])

    spec = compile_document(validate_document(data))
    if validate:
        validate_or_raise(spec)
    logger.debug("Loaded workflow %s with %d nodes", spec.name, len(spec.nodes))
    return spec


def load_workflow_file(path: Union[str, Path], *, validate: bool = True) -> WorkflowSpec:
    with open(path, "r") as f:
        return load_workflow(f.read(), validate=validate)


def compile_document(doc: WorkflowDocument) -> WorkflowSpec:
    """ Turn a validated document into the immutable WorkflowSpec. """
    if isinstance(doc.nodes, dict):
        node_specs = [(node_id, spec) for node_id, spec in doc.nodes.items()]
    else:
        node_specs = [(spec.id, spec) for spec in doc.nodes]

    missing = [f"Node at position {i} has no id" for i, (node_id, _) in enumerate(node_specs) if not node_id]
    if missing:
        raise WorkflowValidationError(missing)

    nodes = [_compile_node(node_id, spec) for node_id, spec in node_specs]
    edges = [Edge(src=e.src, dest=e.dest, condition=e.condition) for e in doc.edges]

    execution = None
    if doc.execution is not None:
        execution = ExecutionConfig(
            mode=doc.execution.mode,
            rounds=doc.execution.rounds,
            schedule=parse_schedule(doc.execution.schedule),
            tick=parse_tick_config(doc.execution.ticks),
        )

    return WorkflowSpec(
        id=doc.id or f"wf_{uuid.uuid4().hex[:12]}",
        name=doc.name,
        description=doc.description or "",
        version=None if doc.version is None else str(doc.version),
        max_budget=None if doc.max_budget is None else str(doc.max_budget),
        entry_node=doc.entry_node,
        execution=execution,
        nodes=tuple(nodes),
        edges=tuple(edges),
        outputs={key: _output_template(key, value) for key, value in doc.outputs.items()},
        tags=tuple(doc.tags),
        inputs={
            name: InputDeclaration(name=name, type=i.type, description=i.description,
                                   required=i.required, default=i.default)
            for name, i in doc.inputs.items()
        },
        metadata=_metadata(doc),
    )


def _output_template(key: str, value: Union[str, OutputSpec]) -> str:
    if isinstance(value, OutputSpec):
        return value.value or "{{" + key + "}}"
    return value


def _metadata(doc: WorkflowDocument) -> dict:
    metadata = {"tags": list(doc.tags)}
    for key, value in (("chain", doc.chain), ("token", doc.token),
                       ("author", doc.author), ("createdAt", doc.created_at)):
        if value is not None:
            metadata[key] = value
    metadata.update(doc.metadata)
    return metadata


def _compile_node(node_id: str, spec: NodeSpec) -> Node:
    retry = None
    if spec.retry is not None:
        retry = RetryPolicy(max_attempts=spec.retry.max_attempts, backoff_ms=spec.retry.backoff_ms)

    return Node(
        id=node_id,
        kind=spec.type,
        agent_ref=spec.agent or spec.ref,
        name=spec.name or node_id,
        inputs=dict(spec.inputs),
        retry_policy=retry,
        condition=spec.condition,
        schedule=parse_schedule(spec.schedule),
        tick=parse_tick_config(spec.ticks),
        dialogue=_compile_dialogue(spec.dialogue),
    )


def _compile_dialogue(spec: Optional[DialogueSpec]) -> Optional[DialogueConfig]:
    if spec is None:
        return None
    return DialogueConfig(
        mode=spec.mode,
        participants=tuple(spec.participants),
        turns=tuple(
            DialogueTurn(speaker=t.speaker, prompt=t.prompt, respond_to=tuple(t.respond_to))
            for t in spec.turns
        ),
        max_turns=spec.max_turns,
        end_condition=spec.end_condition,
    )


def parse_schedule(spec: Optional[ScheduleSpec]) -> Optional[ScheduleWindow]:
    if spec is None:
        return None
    return ScheduleWindow(
        start_time=spec.start_time,
        end_time=spec.end_time,
        timezone=spec.timezone,
        days_of_week=None if spec.days_of_week is None else tuple(spec.days_of_week),
    )


def parse_tick_config(spec: Optional[TickSpec]) -> Optional[TickConfig]:
    """ Fold the seconds/minutes convenience fields into interval_ms. """
    if spec is None:
        return None

    interval_ms = None
    if spec.interval_ms:
        interval_ms = spec.interval_ms
    elif spec.interval_seconds:
        interval_ms = spec.interval_seconds * 1000
    elif spec.interval_minutes:
        interval_ms = spec.interval_minutes * 60 * 1000

    return TickConfig(
        enabled=spec.enabled,
        interval_ms=interval_ms if interval_ms is not None else spec.interval_ms,
        max_ticks_per_round=spec.max_ticks_per_round,
        interval_seconds=spec.interval_seconds,
        interval_minutes=spec.interval_minutes,
    )


def generate_template() -> str:
    """ Sample workflow document, a starting point for new workflows. """
    return """name: "My Workflow"
description: "Sample workflow description"
version: "1.0.0"
chain: "base"
token: "USDC"
maxBudget: "5.0"
entryNode: node1
tags:
  - sample

inputs:
  text:
    type: string
    description: Input text to process
    required: true

outputs:
  sentiment:
    type: string
    description: Sentiment of the summary
    value: "{{node2.output}}"

nodes:
  node1:
    type: agent
    agent: text-summarizer-v1
    name: "Summarize Text"
    inputs:
      text: "{{inputs.text}}"
      maxLength: 100
    retry:
      maxAttempts: 3
      backoffMs: 1000

  node2:
    type: agent
    agent: sentiment-analyzer-v1
    name: "Analyze Sentiment"
    inputs:
      text: "{{node1.output}}"

edges:
  - from: node1
    to: node2
"""

