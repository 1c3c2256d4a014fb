""" Shared contract for node executors. """

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..clock import SystemClock
from ..config import EngineConfig
from ..errors import InvocationError, UnknownAgentError, WorkflowError
from ..protocols import AgentDescriptor, AgentInvoker, AgentLookup, InvocationResult, Message
from ..workflow.models import Node, NodeRun

logger = logging.getLogger(__name__)


@dataclass
class NodeOutcome:
    output: Any
    cost: str = "0"
    logs: List[str] = field(default_factory=list)


class NodeExecutor(ABC):
    """ Abstract base class for node kinds. One instance per NodeRun attempt. """

    def __init__(self, node: Node, invoker: AgentInvoker, lookup: Optional[AgentLookup] = None,
                 config: Optional[EngineConfig] = None, run_id: str = "", clock=None):
        self.node = node
        self.invoker = invoker
        self.lookup = lookup
        self.config = config or EngineConfig()
        self.run_id = run_id
        self.clock = clock or SystemClock()

    @abstractmethod
    async def execute(self, node_run: NodeRun, context: Dict[str, Any]) -> NodeOutcome:
        """
        Run the node once. Raises InvocationError for retryable failures
        and TemplateError for unresolvable inputs.
        """

    def resolve_agent(self, agent_ref: str) -> Optional[AgentDescriptor]:
        if self.lookup is None:
            return AgentDescriptor(ref=agent_ref, endpoint_ref=agent_ref)
        return self.lookup.resolve(agent_ref)

    def require_agent(self, agent_ref: str) -> AgentDescriptor:
        descriptor = self.resolve_agent(agent_ref)
        if descriptor is None:
            raise UnknownAgentError(agent_ref)
        return descriptor

    async def invoke(self, descriptor: AgentDescriptor, message: Message,
                     correlation_id: Optional[str] = None) -> InvocationResult:
        """ One bounded call to the external agent. """
        timeout = self.config.invocation_timeout_ms / 1000
        try:
            return await asyncio.wait_for(
                self.invoker.invoke(descriptor.endpoint_ref, message, correlation_id),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise InvocationError(
                f"Agent {descriptor.ref} timed out after {timeout:g}s", agent_ref=descriptor.ref
            ) from e
        except WorkflowError:
            raise
        except Exception as e:
            raise InvocationError(f"Agent {descriptor.ref} failed: {e}", agent_ref=descriptor.ref) from e

    def correlation_id(self, suffix: str = "") -> str:
        base = f"{self.run_id}:{self.node.id}"
        return f"{base}:{suffix}" if suffix else base
