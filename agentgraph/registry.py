"""
In-process agent registry.

Python callables registered with `register_agent` act as agents: the
registry answers lookups for them and LocalAgentInvoker calls them.
"""

import inspect
import logging
from typing import Any, Callable, Dict, Optional

from .errors import InvocationError
from .protocols import AgentDescriptor, InvocationResult, Message

logger = logging.getLogger(__name__)

_AGENTS: Dict[str, Callable] = {}


def register_agent(ref: str):
    def _wrap(fn):
        _AGENTS[ref] = fn
        return fn
    return _wrap


def get_agent(ref: str) -> Callable:
    if ref not in _AGENTS:
        raise InvocationError(f"Agent not registered: {ref}", agent_ref=ref)
    return _AGENTS[ref]


def unregister_agent(ref: str) -> None:
    _AGENTS.pop(ref, None)


class AgentRegistry:
    """
    Lookup over explicitly added descriptors, falling back to agents
    registered in-process (endpoint ref == agent ref).
    """

    def __init__(self, include_registered: bool = True):
        self._descriptors: Dict[str, AgentDescriptor] = {}
        self._include_registered = include_registered

    def add(self, ref: str, endpoint_ref: Optional[str] = None,
            pricing: Optional[Dict[str, Any]] = None) -> AgentDescriptor:
        descriptor = AgentDescriptor(ref=ref, endpoint_ref=endpoint_ref or ref, pricing=pricing or {})
        self._descriptors[ref] = descriptor
        return descriptor

    def resolve(self, agent_ref: str) -> Optional[AgentDescriptor]:
        if agent_ref in self._descriptors:
            return self._descriptors[agent_ref]
        if self._include_registered and agent_ref in _AGENTS:
            return AgentDescriptor(ref=agent_ref, endpoint_ref=agent_ref)
        return None


class LocalAgentInvoker:
    """ Invokes registered callables; sync and async functions both work. """

    def __init__(self, agents: Optional[Dict[str, Callable]] = None):
        self._agents = agents

    def _lookup(self, endpoint_ref: str) -> Callable:
        if self._agents is not None:
            if endpoint_ref not in self._agents:
                raise InvocationError(f"Agent not registered: {endpoint_ref}", agent_ref=endpoint_ref)
            return self._agents[endpoint_ref]
        return get_agent(endpoint_ref)

    async def invoke(self, endpoint_ref: str, message: Message,
                     correlation_id: Optional[str] = None) -> InvocationResult:
        fn = self._lookup(endpoint_ref)
        try:
            result = fn(message)
            if inspect.isawaitable(result):
                result = await result
        except InvocationError:
            raise
        except Exception as e:
            logger.warning("Agent %s raised %s: %s", endpoint_ref, type(e).__name__, e)
            raise InvocationError(f"Agent {endpoint_ref} failed: {e}", agent_ref=endpoint_ref) from e
        return _to_result(result)


def _to_result(result: Any) -> InvocationResult:
    if isinstance(result, InvocationResult):
        return result
    if isinstance(result, dict):
        response = result.get("response", result.get("text", result.get("output")))
        if response is None:
            response = result
        if not isinstance(response, str):
            response = str(response)
        return InvocationResult(response=response, cost=str(result.get("cost", "0")))
    return InvocationResult(response=str(result))
