""" Executor for `agent` nodes: one external call per attempt. """

import logging
from typing import Any, Dict

from ..workflow.models import NodeRun
from ..workflow.templates import resolve_value
from .base import NodeExecutor, NodeOutcome

logger = logging.getLogger(__name__)


class AgentCallExecutor(NodeExecutor):
    async def execute(self, node_run: NodeRun, context: Dict[str, Any]) -> NodeOutcome:
        # Inputs are resolved once; retries send exactly the same payload.
        if node_run.resolved_inputs is None:
            node_run.resolved_inputs = resolve_value(self.node.inputs, context)

        descriptor = self.require_agent(self.node.agent_ref)
        attempt = node_run.retry_count + 1
        logger.info("Node %s: calling %s (attempt %d)", self.node.id, descriptor.ref, attempt)

        result = await self.invoke(
            descriptor,
            node_run.resolved_inputs,
            correlation_id=self.correlation_id(str(attempt)),
        )
        return NodeOutcome(
            output=result.response,
            cost=result.cost or "0",
            logs=[f"{descriptor.ref} responded with {len(result.response)} chars"],
        )
