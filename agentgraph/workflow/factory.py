""" Factory for creating node executors based on node kind. """

from typing import Dict, Type

from ..nodes.agent_call import AgentCallExecutor
from ..nodes.base import NodeExecutor
from ..nodes.dialogue import DialogueOrchestrator
from .models import AGENT, DIALOGUE, Node

_EXECUTOR_MAP: Dict[str, Type[NodeExecutor]] = {
    AGENT: AgentCallExecutor,
    DIALOGUE: DialogueOrchestrator,
}


def make_executor(node: Node, **kwargs) -> NodeExecutor:
    cls = _EXECUTOR_MAP.get(node.kind)
    if not cls:
        raise ValueError(f"Unsupported node type: {node.kind}")
    return cls(node, **kwargs)
