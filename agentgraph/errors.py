""" Error taxonomy for workflow validation and execution. """

from typing import List, Optional


class WorkflowError(Exception):
    """ Base class for every error raised by the engine. """


class StructuralError(WorkflowError, ValueError):
    """ The workflow graph itself is malformed. Never retried. """


class WorkflowValidationError(StructuralError):
    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Workflow validation failed: " + "; ".join(self.errors))


class GateBlockedError(WorkflowError):
    """ A schedule or tick gate does not permit execution yet. Not a failure. """

    def __init__(self, reason: str, retry_after_ms: Optional[float] = None):
        # None: blocked until the tick round is reset
        self.reason = reason
        self.retry_after_ms = retry_after_ms
        if retry_after_ms is None:
            super().__init__(f"{reason} (until next round)")
        else:
            super().__init__(f"{reason} (retry in {retry_after_ms:.0f}ms)")


class InvocationError(WorkflowError):
    """ An external agent call failed or timed out. """

    retryable = True

    def __init__(self, message: str, agent_ref: Optional[str] = None):
        self.agent_ref = agent_ref
        super().__init__(message)


class UnknownAgentError(InvocationError):
    retryable = False

    def __init__(self, agent_ref: str):
        super().__init__(f"Agent not found: {agent_ref}", agent_ref=agent_ref)


class TemplateError(WorkflowError):
    """ A template could not be resolved. Fatal for the node. """


class TemplateResolutionError(TemplateError, KeyError):
    def __init__(self, path: str, template: Optional[str] = None):
        self.path = path
        self.template = template
        super().__init__(f"Unresolved template reference: {path}")

    def __str__(self) -> str:
        return self.args[0]


class CircularTemplateReferenceError(TemplateError):
    def __init__(self, chain: List[str]):
        self.chain = list(chain)
        super().__init__("Circular template reference: " + " -> ".join(self.chain))


class BudgetError(WorkflowError):
    """ The budget collaborator refused the reservation for a run. """
