"""Example: load a YAML workflow and run it against in-process agents.

Agents are plain Python functions registered with `register_agent`; the
reviewer fails once to show the retry policy at work.
"""
from agentgraph.config import configure_logging
from agentgraph.registry import register_agent
from agentgraph.workflow.compiler import load_workflow
from agentgraph.workflow.executor import run_workflow

WORKFLOW = """
name: Blog post
entryNode: outline
nodes:
  outline:
    agent: outliner-v1
    inputs:
      topic: "{{inputs.topic}}"
  draft:
    agent: writer-v1
    inputs:
      outline: "{{outline.output}}"
  review:
    agent: reviewer-v1
    retry:
      maxAttempts: 2
      backoffMs: 200
    inputs:
      draft: "{{draft.output}}"
edges:
  - from: outline
    to: draft
  - from: draft
    to: review
outputs:
  post: "{{draft.output}}"
  verdict: "{{review.output}}"
"""

_attempts = {"review": 0}


@register_agent("outliner-v1")
def outliner(message):
    return {"response": f"1. Why {message['topic']}  2. How  3. Next steps", "cost": "0.01"}


@register_agent("writer-v1")
def writer(message):
    return {"response": f"A short post following: {message['outline']}", "cost": "0.05"}


@register_agent("reviewer-v1")
def reviewer(message):
    _attempts["review"] += 1
    if _attempts["review"] == 1:
        raise RuntimeError("reviewer warming up")
    return {"response": "approved", "cost": "0.02"}


def main():
    configure_logging()
    spec = load_workflow(WORKFLOW)
    run = run_workflow(spec, {"topic": "workflow engines"})

    print('\n--- RUN RESULT ---')
    print('status:', run.status)
    print('dispatch order:', run.dispatch_order)
    for key, value in run.outputs.items():
        print(f'{key}: {value}')
    print('cost:', run.cost)
    print('review retries:', run.node_runs['review'].retry_count)


if __name__ == '__main__':
    main()
