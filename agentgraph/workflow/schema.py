""" Pydantic schema for declarative workflow documents. """

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import WorkflowValidationError


class _Spec(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class ScheduleSpec(_Spec):
    start_time: Optional[str] = Field(default=None, alias="startTime")
    end_time: Optional[str] = Field(default=None, alias="endTime")
    timezone: Optional[str] = None
    days_of_week: Optional[List[int]] = Field(default=None, alias="daysOfWeek")


class TickSpec(_Spec):
    enabled: bool = False
    interval_ms: Optional[float] = Field(default=None, alias="intervalMs")
    interval_seconds: Optional[float] = Field(default=None, alias="intervalSeconds")
    interval_minutes: Optional[float] = Field(default=None, alias="intervalMinutes")
    max_ticks_per_round: Optional[int] = Field(default=None, alias="maxTicksPerRound")


class RetrySpec(_Spec):
    max_attempts: int = Field(default=0, alias="maxAttempts")
    backoff_ms: float = Field(default=0, alias="backoffMs")


class DialogueTurnSpec(_Spec):
    speaker: str
    prompt: str
    respond_to: List[str] = Field(default_factory=list, alias="respondTo")


class DialogueSpec(_Spec):
    mode: str = "sequential"
    participants: List[str] = Field(default_factory=list)
    turns: List[DialogueTurnSpec] = Field(default_factory=list)
    max_turns: Optional[int] = Field(default=None, alias="maxTurns")
    end_condition: Optional[str] = Field(default=None, alias="endCondition")


class ExecutionSpec(_Spec):
    mode: Optional[str] = None
    rounds: Optional[int] = None
    schedule: Optional[ScheduleSpec] = None
    ticks: Optional[TickSpec] = None


class NodeSpec(_Spec):
    id: Optional[str] = None  # taken from the mapping key when nodes is a mapping
    type: str = "agent"
    agent: Optional[str] = None
    ref: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    inputs: Dict[str, Any] = Field(default_factory=dict)
    condition: Optional[str] = None
    retry: Optional[RetrySpec] = None
    schedule: Optional[ScheduleSpec] = None
    ticks: Optional[TickSpec] = None
    dialogue: Optional[DialogueSpec] = None


class EdgeSpec(_Spec):
    src: str = Field(alias="from")
    dest: str = Field(alias="to")
    condition: Optional[str] = None


class InputSpec(_Spec):
    type: str = "string"
    description: str = ""
    required: bool = True
    default: Any = None


class OutputSpec(_Spec):
    type: str = "string"
    description: str = ""
    value: Optional[str] = None  # defaults to "{{<key>}}"


class WorkflowDocument(_Spec):
    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    version: Optional[Union[str, int, float]] = None
    max_budget: Optional[Union[str, int, float]] = Field(default=None, alias="maxBudget")
    entry_node: Optional[str] = Field(default=None, alias="entryNode")
    execution: Optional[ExecutionSpec] = None
    nodes: Union[Dict[str, NodeSpec], List[NodeSpec]] = Field(default_factory=list)
    edges: List[EdgeSpec] = Field(default_factory=list)
    inputs: Dict[str, InputSpec] = Field(default_factory=dict)
    outputs: Dict[str, Union[str, OutputSpec]] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    # carried as metadata, never acted on
    chain: Optional[str] = None
    token: Optional[str] = None
    author: Optional[str] = None
    created_at: Any = Field(default=None, alias="createdAt")
    metadata: Dict[str, Any] = Field(default_factory=dict)


def validate_document(raw: Dict[str, Any]) -> WorkflowDocument:
    """ Validate a raw YAML dict against WorkflowDocument. """
    try:
        return WorkflowDocument.model_validate(raw)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        ]
        raise WorkflowValidationError(errors) from e
