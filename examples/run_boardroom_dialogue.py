"""Example: a round-robin dialogue between three agents.

Each speaker sees the last few lines of the conversation; the dialogue
ends early once the CFO answers "true".
"""
import asyncio

from agentgraph.clock import ManualClock
from agentgraph.registry import LocalAgentInvoker
from agentgraph.workflow.compiler import load_workflow
from agentgraph.workflow.executor import WorkflowExecutor

WORKFLOW = """
name: Boardroom
entryNode: meeting
nodes:
  meeting:
    type: dialogue
    dialogue:
      mode: round-robin
      participants: [ceo-agent-v1, cto-agent-v1, cfo-agent-v1]
      maxTurns: 9
      endCondition: "{{lastResponse}}"
outputs:
  transcript: "{{meeting.output.conversationHistory}}"
"""


def ceo(prompt):
    return "We should move our support desk to agent workflows."


def cto(prompt):
    return "Feasible this quarter if we start with triage."


def cfo(prompt):
    # agrees once the CTO has weighed in
    return "true" if "CTO:" in prompt else "What does it cost?"


async def main():
    executor = WorkflowExecutor(
        invoker=LocalAgentInvoker({"ceo-agent-v1": ceo, "cto-agent-v1": cto, "cfo-agent-v1": cfo}),
        clock=ManualClock(),
    )
    run = await executor.execute(load_workflow(WORKFLOW), {"topic": "support automation"})

    print('status:', run.status)
    for line in run.outputs['transcript']:
        print(' ', line)


if __name__ == '__main__':
    asyncio.run(main())
