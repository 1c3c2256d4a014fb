"""
Collaborator interfaces consumed by the engine.

Storage, marketplace lookup, payments and transport live outside the
engine; it only needs these narrow capabilities.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Union, runtime_checkable

Message = Union[str, Dict[str, Any]]


@dataclass
class InvocationResult:
    response: str
    cost: str = "0"


@dataclass
class AgentDescriptor:
    ref: str
    endpoint_ref: str
    pricing: Dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class AgentInvoker(Protocol):
    async def invoke(
        self, endpoint_ref: str, message: Message, correlation_id: Optional[str] = None
    ) -> InvocationResult:
        ...


@runtime_checkable
class AgentLookup(Protocol):
    def resolve(self, agent_ref: str) -> Optional[AgentDescriptor]:
        ...


@runtime_checkable
class BudgetManager(Protocol):
    def reserve(self, run_id: str, amount: str) -> bool:
        ...

    def settle(self, run_id: str, actual_spent: str) -> str:
        ...
