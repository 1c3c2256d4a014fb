"""
Execution scheduler: drives a WorkflowRun from queued to a terminal status.

One poll loop per run. Nodes whose predecessors have all settled are
gated by schedule window and tick frequency, then dispatched concurrently
up to `max_workers`. Retries, gate deferrals and backoffs are plain
per-node state re-examined by the loop, so every wait goes through the
clock and can run on virtual time.
"""

import asyncio
import dataclasses
import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set

from ..budget import to_decimal
from ..clock import SystemClock
from ..config import EngineConfig
from ..errors import (
    BudgetError,
    GateBlockedError,
    InvocationError,
    TemplateError,
    WorkflowError,
)
from ..protocols import AgentInvoker, AgentLookup, BudgetManager
from ..registry import AgentRegistry, LocalAgentInvoker
from .factory import make_executor
from .gates import TickGate, is_within_schedule, wait_until_ms
from .guards import evaluate_condition
from .models import (
    Edge,
    Node,
    NodeRun,
    NodeStatus,
    RetryPolicy,
    RunProgress,
    RunStatus,
    ScheduleWindow,
    SkipReason,
    TickConfig,
    WorkflowRun,
    WorkflowSpec,
)
from .templates import find_references, lookup, resolve
from .validator import validate

logger = logging.getLogger(__name__)

_NO_RETRY = RetryPolicy()

# verdicts for a pending node
_WAIT = "wait"
_READY = "ready"
_SETTLED = "settled"


class WorkflowExecutor:
    """
    Runs workflows against an agent invoker.

    Tick state is shared by every run started from the same executor,
    so two runs driving the same agent observe one frequency limit.
    """

    def __init__(self, invoker: AgentInvoker, lookup: Optional[AgentLookup] = None,
                 budget: Optional[BudgetManager] = None, config: Optional[EngineConfig] = None,
                 clock=None, tick_gate: Optional[TickGate] = None):
        self.invoker = invoker
        self.lookup = lookup
        self.budget = budget
        self.config = config or EngineConfig()
        self.clock = clock or SystemClock()
        self.tick_gate = tick_gate or TickGate(self.clock)
        self._runs: Dict[str, WorkflowRun] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._cancel_events: Dict[str, asyncio.Event] = {}
        self._orphans: Set[asyncio.Future] = set()

    # -------------------------
    # PUBLIC API
    # -------------------------

    async def execute(self, spec: WorkflowSpec, inputs: Optional[Dict[str, Any]] = None,
                      run_id: Optional[str] = None) -> WorkflowRun:
        """ Create a run and drive it to a terminal status. """
        run = self._create_run(spec, inputs, run_id)
        await self._drive(spec, run)
        return run

    def submit(self, spec: WorkflowSpec, inputs: Optional[Dict[str, Any]] = None,
               run_id: Optional[str] = None) -> WorkflowRun:
        """ Queue a run in the background. Must be called from a running event loop. """
        run = self._create_run(spec, inputs, run_id)
        self._tasks[run.run_id] = asyncio.get_running_loop().create_task(self._drive(spec, run))
        return run

    async def wait(self, run_id: str) -> WorkflowRun:
        task = self._tasks.get(run_id)
        if task is not None:
            await task
        return self._runs[run_id]

    def cancel(self, run_id: str) -> bool:
        """
        Stop dispatching for a queued or running run. In-flight invocations
        are left to finish; their results are discarded.
        """
        run = self._runs.get(run_id)
        if run is None or run.is_terminal:
            return False
        run.cancel_requested = True
        logger.info("Cancellation requested for run %s", run_id)
        if run.status == RunStatus.QUEUED:
            self._finish(run)
        event = self._cancel_events.get(run_id)
        if event is not None:
            event.set()
        return True

    def get_run(self, run_id: str) -> WorkflowRun:
        return self._runs[run_id]

    def progress(self, run_id: str) -> RunProgress:
        return self._runs[run_id].progress()

    async def run_rounds(self, spec: WorkflowSpec, inputs: Optional[Dict[str, Any]] = None,
                         rounds: Optional[int] = None) -> List[WorkflowRun]:
        """
        Run the workflow once per round (`execution.rounds`, default 1),
        starting a fresh tick round before each. Stops early on a run that
        does not complete.
        """
        if rounds is None:
            rounds = (spec.execution.rounds if spec.execution and spec.execution.rounds else 1)
        runs = []
        for number in range(1, rounds + 1):
            for key in {node.actor_key for node in spec.nodes}:
                self.tick_gate.reset_round(key)
            logger.info("Workflow %s: round %d/%d", spec.name, number, rounds)
            run = await self.execute(spec, inputs)
            runs.append(run)
            if run.status != RunStatus.COMPLETED:
                break
        return runs

    # -------------------------
    # RUN LIFECYCLE
    # -------------------------

    def _create_run(self, spec: WorkflowSpec, inputs: Optional[Dict[str, Any]],
                    run_id: Optional[str]) -> WorkflowRun:
        run = WorkflowRun(
            run_id=run_id or f"run_{uuid.uuid4().hex[:12]}",
            workflow_id=spec.id,
            inputs=dict(inputs or {}),
            created_at=self.clock.now(),
        )
        self._runs[run.run_id] = run
        return run

    async def _drive(self, spec: WorkflowSpec, run: WorkflowRun) -> None:
        if run.is_terminal:
            return

        run.status = RunStatus.RUNNING
        run.started_at = self.clock.now()
        logger.info("Run %s started for workflow %s", run.run_id, spec.name)

        result = validate(spec)
        if not result.valid:
            run.error = "Workflow validation failed: " + "; ".join(result.errors)
            logger.error("Run %s: %s", run.run_id, run.error)
            self._finish(run)
            return

        missing = _apply_input_defaults(spec, run.inputs)
        if missing:
            run.error = "Missing required inputs: " + ", ".join(missing)
            logger.error("Run %s: %s", run.run_id, run.error)
            self._finish(run)
            return

        reserved = False
        try:
            reserved = self._reserve_budget(spec, run)
        except BudgetError as e:
            run.error = str(e)
            logger.error("Run %s: %s", run.run_id, run.error)
            self._finish(run)
            return

        event = self._cancel_events[run.run_id] = asyncio.Event()
        try:
            await self._loop(spec, run, event)
        finally:
            self._cancel_events.pop(run.run_id, None)

        self._finish(run, spec)
        if reserved:
            run.refund = self.budget.settle(run.run_id, run.cost)
        logger.info("Run %s finished: %s (cost %s)", run.run_id, run.status, run.cost)

    def _reserve_budget(self, spec: WorkflowSpec, run: WorkflowRun) -> bool:
        if self.budget is None or spec.max_budget is None:
            return False
        to_decimal(spec.max_budget)
        if not self.budget.reserve(run.run_id, spec.max_budget):
            raise BudgetError(f"Insufficient budget: could not reserve {spec.max_budget}")
        return True

    def _finish(self, run: WorkflowRun, spec: Optional[WorkflowSpec] = None) -> None:
        run.ended_at = self.clock.now()
        run.cost = str(sum((to_decimal(nr.cost) for nr in run.node_runs.values()), Decimal("0")))

        if run.cancel_requested:
            run.status = RunStatus.CANCELLED
            run.error = run.error or "Run cancelled"
            return
        if run.error is not None or spec is None:
            run.status = RunStatus.FAILED
            return

        unsettled = [nid for nid in spec.reachable_from_entry()
                     if nid not in run.node_runs or not run.node_runs[nid].is_terminal]
        if unsettled:
            run.status = RunStatus.FAILED
            run.error = "Nodes did not reach a terminal state: " + ", ".join(sorted(unsettled))
            return

        try:
            run.outputs = self._outputs(spec, run)
        except TemplateError as e:
            run.status = RunStatus.FAILED
            run.error = f"Output resolution failed: {e}"
            return
        run.status = RunStatus.COMPLETED

    def _outputs(self, spec: WorkflowSpec, run: WorkflowRun) -> Dict[str, Any]:
        context = self._context(run)
        if not spec.outputs:
            return {nid: nr.output for nid, nr in run.node_runs.items()
                    if nr.status == NodeStatus.COMPLETED}

        outputs = {}
        for key, template in spec.outputs.items():
            refs = find_references(template)
            if len(refs) == 1 and template.strip() == "{{" + refs[0] + "}}":
                outputs[key] = lookup(refs[0], context)
            else:
                outputs[key] = resolve(template, context)
        return outputs

    # -------------------------
    # POLL LOOP
    # -------------------------

    async def _loop(self, spec: WorkflowSpec, run: WorkflowRun, cancel_event: asyncio.Event) -> None:
        reachable = spec.reachable_from_entry()
        incoming = {
            nid: [e for e in spec.predecessors(nid) if e.src in reachable] for nid in reachable
        }
        in_flight: Dict[asyncio.Future, str] = {}

        while True:
            if run.cancel_requested:
                self._abandon(run, in_flight)
                return

            now_ms = self.clock.monotonic_ms()
            delays: List[float] = []
            round_blocked: List[Node] = []

            for node in self._collect_ready(spec, run, reachable, incoming):
                if len(in_flight) >= self.config.max_workers:
                    break
                node_run = run.node_runs.setdefault(node.id, NodeRun(node_id=node.id))
                if node_run.next_eligible_at_ms > now_ms:
                    delays.append(node_run.next_eligible_at_ms - now_ms)
                    continue
                try:
                    self._check_gates(spec, node)
                except GateBlockedError as e:
                    logger.debug("Node %s deferred: %s", node.id, e)
                    if e.retry_after_ms is None:
                        round_blocked.append(node)
                    else:
                        delays.append(e.retry_after_ms)
                    continue
                in_flight[self._dispatch(spec, run, node, node_run)] = node.id

            if not in_flight and not delays:
                if not round_blocked:
                    return
                for node in round_blocked:
                    logger.info("Starting a new tick round for %s", node.actor_key)
                    self.tick_gate.reset_round(node.actor_key)
                continue

            delay = None
            if delays:
                delay = max(min(min(delays), self.config.poll_interval_ms), 1)
            done = await self._wait(in_flight, delay, cancel_event)
            for task in done:
                node_id = in_flight.pop(task)
                self._complete(spec, run, run.node_runs[node_id], task)

    async def _wait(self, in_flight: Dict[asyncio.Future, str], delay: Optional[float],
                    cancel_event: asyncio.Event) -> List[asyncio.Future]:
        waiters = set(in_flight)
        sleeper = None
        if delay is not None:
            sleeper = asyncio.ensure_future(self.clock.sleep(delay))
            waiters.add(sleeper)
        cancel_waiter = asyncio.ensure_future(cancel_event.wait())
        waiters.add(cancel_waiter)
        try:
            done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for helper in (sleeper, cancel_waiter):
                if helper is not None and not helper.done():
                    helper.cancel()
        return [task for task in done if task in in_flight]

    def _collect_ready(self, spec: WorkflowSpec, run: WorkflowRun, reachable: Set[str],
                       incoming: Dict[str, List[Edge]]) -> List[Node]:
        """
        Settle what can be settled (skips, template failures) and return the
        nodes whose dependencies are satisfied. Repeats until nothing changes
        so skips propagate down the graph in one call.
        """
        while True:
            ready: List[Node] = []
            changed = False
            for node in spec.nodes:
                if node.id not in reachable:
                    continue
                node_run = run.node_runs.get(node.id)
                if node_run is not None and node_run.status != NodeStatus.PENDING:
                    continue
                verdict = self._classify(run, node, incoming[node.id])
                if verdict == _READY:
                    ready.append(node)
                elif verdict == _SETTLED:
                    changed = True
            if not changed:
                return ready

    def _classify(self, run: WorkflowRun, node: Node, edges: List[Edge]) -> str:
        sources = [run.node_runs.get(e.src) for e in edges]
        if any(s is None or not s.is_terminal for s in sources):
            return _WAIT

        if any(s.status in (NodeStatus.FAILED, NodeStatus.CANCELLED)
               or s.skip_reason == SkipReason.UPSTREAM_FAILURE for s in sources):
            self._skip(run, node, SkipReason.UPSTREAM_FAILURE)
            return _SETTLED

        # sources are now completed or condition-skipped; a condition-skipped
        # source has no output, so only edges from completed sources are checked
        checked = [e for e, s in zip(edges, sources) if s.status == NodeStatus.COMPLETED]
        context = self._context(run)
        try:
            if not all(evaluate_condition(e.condition, context) for e in checked):
                self._skip(run, node, SkipReason.CONDITION)
                return _SETTLED
            if not evaluate_condition(node.condition, context):
                self._skip(run, node, SkipReason.CONDITION)
                return _SETTLED
        except TemplateError as e:
            node_run = run.node_runs.setdefault(node.id, NodeRun(node_id=node.id))
            self._fail(run, node_run, e)
            return _SETTLED
        return _READY

    def _check_gates(self, spec: WorkflowSpec, node: Node) -> None:
        workflow = spec.execution
        window = node.schedule or (workflow.schedule if workflow else None)
        if window is not None:
            window = self._with_timezone(window)
            now = self.clock.now()
            if not is_within_schedule(window, now):
                raise GateBlockedError("outside schedule window", wait_until_ms(window, now))

        tick = node.tick or (workflow.tick if workflow else None)
        if tick is not None and tick.enabled:
            key = node.actor_key
            if not self.tick_gate.should_execute(key, tick):
                if self.tick_gate.round_exhausted(key, tick):
                    raise GateBlockedError(f"tick round exhausted for {key}")
                raise GateBlockedError(
                    f"tick interval not elapsed for {key}",
                    self.tick_gate.time_until_next_tick(key, tick),
                )

    def _with_timezone(self, window: ScheduleWindow) -> ScheduleWindow:
        if window.timezone:
            return window
        return dataclasses.replace(window, timezone=self.config.default_timezone)

    def _effective_tick(self, spec: WorkflowSpec, node: Node) -> Optional[TickConfig]:
        return node.tick or (spec.execution.tick if spec.execution else None)

    # -------------------------
    # NODE TRANSITIONS
    # -------------------------

    def _dispatch(self, spec: WorkflowSpec, run: WorkflowRun, node: Node,
                  node_run: NodeRun) -> asyncio.Future:
        tick = self._effective_tick(spec, node)
        if tick is not None and tick.enabled:
            self.tick_gate.record_tick(node.actor_key)

        node_run.status = NodeStatus.RUNNING
        if node_run.started_at is None:
            node_run.started_at = self.clock.now()
        run.current_node_id = node.id
        run.dispatch_order.append(node.id)
        logger.info("Run %s: dispatching node %s", run.run_id, node.id)

        executor = make_executor(
            node,
            invoker=self.invoker,
            lookup=self.lookup,
            config=self.config,
            run_id=run.run_id,
            clock=self.clock,
        )
        return asyncio.ensure_future(executor.execute(node_run, self._context(run)))

    def _complete(self, spec: WorkflowSpec, run: WorkflowRun, node_run: NodeRun,
                  task: asyncio.Future) -> None:
        node = spec.node(node_run.node_id)
        try:
            outcome = task.result()
        except InvocationError as e:
            policy = node.retry_policy or _NO_RETRY
            if e.retryable and node_run.retry_count < policy.max_attempts:
                node_run.retry_count += 1
                node_run.error = str(e)
                node_run.status = NodeStatus.PENDING
                node_run.next_eligible_at_ms = self.clock.monotonic_ms() + policy.backoff_ms
                node_run.logs.append(
                    f"Attempt {node_run.retry_count} failed: {e}; retrying in {policy.backoff_ms:g}ms"
                )
                logger.warning("Node %s failed (%s); retry %d/%d",
                               node.id, e, node_run.retry_count, policy.max_attempts)
                return
            self._fail(run, node_run, e)
        except WorkflowError as e:
            self._fail(run, node_run, e)
        except Exception as e:
            logger.exception("Unexpected error in node %s", node.id)
            self._fail(run, node_run, e)
        else:
            node_run.output = outcome.output
            node_run.cost = outcome.cost or "0"
            node_run.logs.extend(outcome.logs)
            node_run.error = None
            node_run.status = NodeStatus.COMPLETED
            node_run.ended_at = self.clock.now()
            logger.info("Run %s: node %s completed", run.run_id, node.id)

    def _fail(self, run: WorkflowRun, node_run: NodeRun, error: Exception) -> None:
        node_run.status = NodeStatus.FAILED
        node_run.error = str(error)
        node_run.ended_at = self.clock.now()
        node_run.logs.append(f"Failed: {error}")
        if run.error is None:
            run.error = f"Node {node_run.node_id} failed: {error}"
        logger.error("Run %s: node %s failed: %s", run.run_id, node_run.node_id, error)

    def _skip(self, run: WorkflowRun, node: Node, reason: str) -> None:
        node_run = run.node_runs.setdefault(node.id, NodeRun(node_id=node.id))
        node_run.status = NodeStatus.SKIPPED
        node_run.skip_reason = reason
        node_run.ended_at = self.clock.now()
        node_run.logs.append(f"Skipped: {reason}")
        logger.info("Run %s: node %s skipped (%s)", run.run_id, node.id, reason)

    def _abandon(self, run: WorkflowRun, in_flight: Dict[asyncio.Future, str]) -> None:
        now = self.clock.now()
        for task, node_id in in_flight.items():
            node_run = run.node_runs[node_id]
            node_run.status = NodeStatus.CANCELLED
            node_run.ended_at = now
            node_run.logs.append("Run cancelled; in-flight result discarded")
            self._orphans.add(task)
            task.add_done_callback(self._discard)
        for node_run in run.node_runs.values():
            if node_run.status == NodeStatus.PENDING:
                node_run.status = NodeStatus.CANCELLED
                node_run.ended_at = now

    def _discard(self, task: asyncio.Future) -> None:
        self._orphans.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Discarded result of cancelled node: %s", task.exception())

    @staticmethod
    def _context(run: WorkflowRun) -> Dict[str, Any]:
        context: Dict[str, Any] = {"inputs": run.inputs}
        for node_id, node_run in run.node_runs.items():
            if node_run.status == NodeStatus.COMPLETED:
                context[node_id] = {"output": node_run.output}
        return context


def _apply_input_defaults(spec: WorkflowSpec, inputs: Dict[str, Any]) -> List[str]:
    """ Fill declared defaults into `inputs` in place; return the required names still missing. """
    missing = []
    for name, declared in spec.inputs.items():
        if name in inputs:
            continue
        if declared.default is not None:
            inputs[name] = declared.default
        elif declared.required:
            missing.append(name)
    return missing


def run_workflow(spec: WorkflowSpec, inputs: Optional[Dict[str, Any]] = None, *,
                 invoker: Optional[AgentInvoker] = None, lookup: Optional[AgentLookup] = None,
                 **kwargs) -> WorkflowRun:
    """
    Synchronous convenience wrapper. Defaults to agents registered
    in-process with `register_agent`.
    """
    executor = WorkflowExecutor(
        invoker=invoker or LocalAgentInvoker(),
        lookup=lookup or AgentRegistry(),
        **kwargs,
    )
    return asyncio.run(executor.execute(spec, inputs))
