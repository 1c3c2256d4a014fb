"""
Dialogue orchestration: several agents taking turns in one conversation.

Turns run strictly one after another; turn n+1 always sees turn n in the
conversation history.
"""

import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from ..errors import WorkflowError
from ..protocols import AgentDescriptor
from ..workflow.guards import evaluate_condition
from ..workflow.models import (
    DYNAMIC,
    ROUND_ROBIN,
    SEQUENTIAL,
    DialogueConfig,
    DialogueTurn,
    DialogueTurnResult,
    NodeRun,
)
from ..workflow.templates import resolve, resolve_value
from .base import NodeExecutor, NodeOutcome

logger = logging.getLogger(__name__)

IDLE = "idle"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"

HISTORY_WINDOW = 3
RECENT_SPEAKERS = 2

_SYNTHESIZED_PROMPT = (
    "Based on the conversation so far:\n{history}\n\n"
    "Please provide your perspective on: {topic}"
)


def speaker_label(agent_ref: str) -> str:
    """ 'ceo-agent-v1' -> 'CEO' """
    head = (agent_ref or "").split("-")[0]
    return head.upper() if head else "UNKNOWN"


class ConversationLog:
    """ Append-only record of a dialogue. Readers get immutable snapshots. """

    def __init__(self):
        self._lines: List[str] = []
        self._turns: List[DialogueTurnResult] = []

    def append(self, turn: DialogueTurnResult) -> None:
        self._turns.append(turn)
        self._lines.append(f"{speaker_label(turn.speaker)}: {turn.response}")

    @property
    def history(self) -> Tuple[str, ...]:
        return tuple(self._lines)

    @property
    def turns(self) -> Tuple[DialogueTurnResult, ...]:
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)


class DialogueOrchestrator(NodeExecutor):
    """ Executor for `dialogue` nodes. State: idle -> running -> completed | failed. """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.state = IDLE
        self.log = ConversationLog()
        self.participants: Dict[str, AgentDescriptor] = {}

    async def execute(self, node_run: NodeRun, context: Dict[str, Any]) -> NodeOutcome:
        dialogue = self.node.dialogue
        if dialogue is None:
            raise WorkflowError(f"Node {self.node.id} has no dialogue configuration")

        if node_run.resolved_inputs is None:
            node_run.resolved_inputs = resolve_value(self.node.inputs, context)

        logger.info("Starting dialogue: %s (%s)", self.node.name or self.node.id, dialogue.mode)
        self.state = RUNNING
        self.log = ConversationLog()
        self._resolve_participants(dialogue, node_run)

        try:
            if dialogue.mode == SEQUENTIAL:
                await self._run_sequential(dialogue, context)
            elif dialogue.mode == ROUND_ROBIN:
                await self._run_round_robin(dialogue, context)
            elif dialogue.mode == DYNAMIC:
                await self._run_dynamic(dialogue, context)
            else:
                raise WorkflowError(f"Unsupported dialogue mode: {dialogue.mode}")
        except Exception:
            self.state = FAILED
            raise

        self.state = COMPLETED
        turns = self.log.turns
        cost = sum((Decimal(t.cost or "0") for t in turns), Decimal("0"))
        output = {
            "turns": [t.to_dict() for t in turns],
            "conversationHistory": list(self.log.history),
            "summary": self._summary(),
        }
        return NodeOutcome(output=output, cost=str(cost), logs=[f"Completed {len(turns)} dialogue turns"])

    def _resolve_participants(self, dialogue: DialogueConfig, node_run: NodeRun) -> None:
        self.participants = {}
        refs = list(dialogue.participants)
        for turn in dialogue.turns:
            if turn.speaker not in refs:
                refs.append(turn.speaker)
        for ref in refs:
            descriptor = self.resolve_agent(ref)
            if descriptor is None:
                message = f"Participant {ref} could not be resolved; skipping"
                logger.warning("Dialogue %s: %s", self.node.id, message)
                node_run.logs.append(message)
                continue
            self.participants[ref] = descriptor

    def _max_turns(self, dialogue: DialogueConfig) -> int:
        return dialogue.max_turns or len(dialogue.turns)

    def _should_end(self, dialogue: DialogueConfig, context: Dict[str, Any]) -> bool:
        if not dialogue.end_condition:
            return False
        turns = self.log.turns
        condition_context = {
            **context,
            "turnCount": len(turns),
            "lastResponse": turns[-1].response if turns else "",
            "conversationHistory": self.log.history,
        }
        if evaluate_condition(dialogue.end_condition, condition_context):
            logger.info("Dialogue %s end condition met after %d turns", self.node.id, len(turns))
            return True
        return False

    async def _run_sequential(self, dialogue: DialogueConfig, context: Dict[str, Any]) -> None:
        limit = min(len(dialogue.turns), self._max_turns(dialogue))
        for turn in dialogue.turns[:limit]:
            if self._should_end(dialogue, context):
                break
            await self._take_turn(turn, context)

    async def _run_round_robin(self, dialogue: DialogueConfig, context: Dict[str, Any]) -> None:
        speakers = [ref for ref in dialogue.participants if ref in self.participants]
        if not speakers:
            logger.warning("Dialogue %s has no resolvable participants", self.node.id)
            return
        for index in range(self._max_turns(dialogue)):
            if self._should_end(dialogue, context):
                break
            speaker = speakers[index % len(speakers)]
            turn = self._synthesized_turn(speaker, HISTORY_WINDOW, context)
            await self._take_turn(turn, context, resolved=True)

    async def _run_dynamic(self, dialogue: DialogueConfig, context: Dict[str, Any]) -> None:
        for _ in range(self._max_turns(dialogue)):
            if self._should_end(dialogue, context):
                break
            speaker = self._select_next_speaker(dialogue)
            if speaker is None:
                logger.warning("Dialogue %s: no next speaker, ending", self.node.id)
                break
            turn = self._synthesized_turn(speaker, RECENT_SPEAKERS, context)
            await self._take_turn(turn, context, resolved=True)

    def _select_next_speaker(self, dialogue: DialogueConfig) -> Optional[str]:
        candidates = [ref for ref in dialogue.participants if ref in self.participants]
        if not candidates:
            return None
        recent = {t.speaker for t in self.log.turns[-RECENT_SPEAKERS:]}
        for ref in candidates:
            if ref not in recent:
                return ref
        return candidates[0]

    def _synthesized_turn(self, speaker: str, respond_window: int, context: Dict[str, Any]) -> DialogueTurn:
        """ Plain text prompt; history is quoted, not resolved as a template. """
        history = "\n".join(self.log.history[-HISTORY_WINDOW:])
        return DialogueTurn(
            speaker=speaker,
            prompt=_SYNTHESIZED_PROMPT.format(history=history, topic=_topic(context)),
            respond_to=tuple(t.turn_id for t in self.log.turns[-respond_window:]),
        )

    async def _take_turn(self, turn: DialogueTurn, context: Dict[str, Any], resolved: bool = False) -> None:
        descriptor = self.participants.get(turn.speaker)
        if descriptor is None:
            logger.warning("Dialogue %s: speaker %s not among participants", self.node.id, turn.speaker)
            return

        history = self.log.history
        turn_context = {
            **context,
            "conversationHistory": history,
            "previousTurns": [t.to_dict() for t in self.log.turns],
            "recentHistory": "\n".join(history[-HISTORY_WINDOW:]),
            "topic": _topic(context),
        }
        prompt = turn.prompt if resolved else resolve(turn.prompt, turn_context)
        turn_id = uuid.uuid4().hex
        logger.info("Dialogue %s: %s speaking", self.node.id, turn.speaker)

        result = await self.invoke(descriptor, prompt, correlation_id=self.correlation_id(turn_id))
        self.log.append(DialogueTurnResult(
            turn_id=turn_id,
            speaker=turn.speaker,
            resolved_prompt=prompt,
            response=result.response,
            timestamp=self.clock.now(),
            cost=result.cost or "0",
        ))

    def _summary(self) -> Dict[str, Any]:
        turns = self.log.turns
        return {
            "totalTurns": len(turns),
            "participants": list(self.participants.keys()),
            "startTime": turns[0].timestamp.isoformat() if turns else None,
            "endTime": turns[-1].timestamp.isoformat() if turns else None,
        }


def _topic(context: Dict[str, Any]) -> str:
    inputs = context.get("inputs") or {}
    values = [str(v) for v in inputs.values()] if isinstance(inputs, dict) else []
    return ", ".join(values) or "the current topic"
