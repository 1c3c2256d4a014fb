""" Data models for workflow specification and run state """

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

AGENT = "agent"
DIALOGUE = "dialogue"
NODE_KINDS = (AGENT, DIALOGUE)

SEQUENTIAL = "sequential"
ROUND_ROBIN = "round-robin"
DYNAMIC = "dynamic"
DIALOGUE_MODES = (SEQUENTIAL, ROUND_ROBIN, DYNAMIC)

EXECUTION_MODES = ("rounds", "ticks", "scheduled", "dialogue")


class NodeStatus:
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"

    TERMINAL = (COMPLETED, FAILED, SKIPPED, CANCELLED)


class SkipReason:
    CONDITION = "condition"
    UPSTREAM_FAILURE = "upstream_failure"


class RunStatus:
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    TERMINAL = (COMPLETED, FAILED, CANCELLED)


@dataclass(frozen=True)
class ScheduleWindow:
    start_time: Optional[str] = None  # HH:MM, 24h
    end_time: Optional[str] = None
    timezone: Optional[str] = None  # engine default applies when absent
    days_of_week: Optional[Tuple[int, ...]] = None  # 0 = Sunday

    @property
    def is_unrestricted(self) -> bool:
        return not self.start_time and not self.end_time and self.days_of_week is None


@dataclass(frozen=True)
class TickConfig:
    enabled: bool = False
    interval_ms: Optional[float] = None
    max_ticks_per_round: Optional[int] = None
    # Convenience fields, folded into interval_ms by the compiler
    interval_seconds: Optional[float] = None
    interval_minutes: Optional[float] = None


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 0
    backoff_ms: float = 0


@dataclass(frozen=True)
class DialogueTurn:
    speaker: str
    prompt: str
    respond_to: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DialogueConfig:
    mode: str = SEQUENTIAL
    participants: Tuple[str, ...] = ()
    turns: Tuple[DialogueTurn, ...] = ()
    max_turns: Optional[int] = None
    end_condition: Optional[str] = None


@dataclass(frozen=True)
class ExecutionConfig:
    mode: Optional[str] = None
    rounds: Optional[int] = None
    schedule: Optional[ScheduleWindow] = None
    tick: Optional[TickConfig] = None


@dataclass(frozen=True)
class Edge:
    src: str
    dest: str
    condition: Optional[str] = None


@dataclass(frozen=True)
class Node:
    id: str
    kind: str = AGENT
    agent_ref: Optional[str] = None
    name: str = ""
    inputs: Dict[str, Any] = field(default_factory=dict)
    retry_policy: Optional[RetryPolicy] = None
    condition: Optional[str] = None
    schedule: Optional[ScheduleWindow] = None
    tick: Optional[TickConfig] = None
    dialogue: Optional[DialogueConfig] = None

    @property
    def actor_key(self) -> str:
        """ Key under which tick state is shared. """
        return self.agent_ref or self.id


@dataclass(frozen=True)
class InputDeclaration:
    """ A declared workflow input. Missing required inputs fail the run before any node starts. """
    name: str
    type: str = "string"
    description: str = ""
    required: bool = True
    default: Any = None


@dataclass(frozen=True)
class WorkflowSpec:
    id: str
    name: str
    nodes: Tuple[Node, ...] = ()
    edges: Tuple[Edge, ...] = ()
    entry_node: Optional[str] = None
    execution: Optional[ExecutionConfig] = None
    max_budget: Optional[str] = None  # passed through to the budget manager
    description: str = ""
    version: Optional[str] = None
    outputs: Dict[str, str] = field(default_factory=dict)
    tags: Tuple[str, ...] = ()
    inputs: Dict[str, InputDeclaration] = field(default_factory=dict)
    # informational only: chain, token, author and similar document keys
    metadata: Dict[str, Any] = field(default_factory=dict)

    def node(self, node_id: str) -> Node:
        for node in self.nodes:
            if node.id == node_id:
                return node
        raise KeyError(node_id)

    def predecessors(self, node_id: str) -> List[Edge]:
        return [e for e in self.edges if e.dest == node_id]

    def successors(self, node_id: str) -> List[Edge]:
        return [e for e in self.edges if e.src == node_id]

    def reachable_from_entry(self) -> Set[str]:
        if self.entry_node is None:
            return set()
        seen = {self.entry_node}
        stack = [self.entry_node]
        while stack:
            current = stack.pop()
            for edge in self.successors(current):
                if edge.dest not in seen:
                    seen.add(edge.dest)
                    stack.append(edge.dest)
        return seen


@dataclass
class DialogueTurnResult:
    turn_id: str
    speaker: str
    resolved_prompt: str
    response: str
    timestamp: datetime
    cost: str = "0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "turnId": self.turn_id,
            "speaker": self.speaker,
            "prompt": self.resolved_prompt,
            "response": self.response,
            "timestamp": self.timestamp.isoformat(),
            "cost": self.cost,
        }


@dataclass
class NodeRun:
    node_id: str
    status: str = NodeStatus.PENDING
    resolved_inputs: Optional[Dict[str, Any]] = None
    output: Any = None
    cost: str = "0"
    retry_count: int = 0
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    logs: List[str] = field(default_factory=list)
    error: Optional[str] = None
    skip_reason: Optional[str] = None
    # Earliest monotonic time (ms) at which the scheduler may dispatch again
    next_eligible_at_ms: float = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in NodeStatus.TERMINAL


@dataclass
class RunProgress:
    status: str
    completed_node_ids: List[str]
    current_node_id: Optional[str] = None
    outputs: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


@dataclass
class WorkflowRun:
    run_id: str
    workflow_id: str
    status: str = RunStatus.QUEUED
    inputs: Dict[str, Any] = field(default_factory=dict)
    node_runs: Dict[str, NodeRun] = field(default_factory=dict)
    outputs: Dict[str, Any] = field(default_factory=dict)
    cost: str = "0"
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    refund: Optional[str] = None
    current_node_id: Optional[str] = None
    # Node ids in the order they were dispatched
    dispatch_order: List[str] = field(default_factory=list)
    cancel_requested: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status in RunStatus.TERMINAL

    def progress(self) -> RunProgress:
        completed = [nid for nid, nr in self.node_runs.items() if nr.status == NodeStatus.COMPLETED]
        return RunProgress(
            status=self.status,
            completed_node_ids=completed,
            current_node_id=self.current_node_id,
            outputs=dict(self.outputs) if self.status == RunStatus.COMPLETED else None,
            error=self.error,
        )
