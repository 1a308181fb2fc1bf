"""Reconciliation of desired and observed service state.

The reconciler turns a :class:`ServiceGraph` plus a snapshot of observed state
into backend actions for one lifecycle operation, and reports a per-service
outcome in a :class:`ReconcileResult`.

Ordering:
    - ``start``: dependencies before dependents, ties by declaration order.
    - ``stop``, ``poweroff``, ``destroy``: dependents before dependencies.
      Containers of services that are no longer declared go first.

Failure handling:
    - A service whose dependency failed to start is never attempted and fails
      with :class:`DependencyFailed`; independent branches carry on.
    - A service whose dependent failed to stop is left running and fails with
      :class:`DependencyHeld`.
    - Each backend action is retried on :class:`BackendTransientError` up to
      ``reconciler.max_retries`` times with a linear backoff;
      :class:`BackendFatalError` fails the service at once.

Concurrency:
    With ``reconciler.max_workers > 1`` independent services are handled on a
    thread pool. A service is only submitted once every prerequisite
    (dependencies for start, dependents for stop) has resolved, so the
    ordering guarantees above still hold.

.. seealso::
   :class:`dockyard.deployment.app_manager.AppManager` : Drives one reconcile per command
"""

import threading
import time
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait

from dockyard.base.errors import (
    BackendError,
    BackendTransientError,
    ContainerNotFound,
    DependencyFailed,
    DependencyHeld,
    OperationAborted,
    ServiceFailed,
)
from dockyard.base.models import (
    AppRecord,
    ObservedState,
    Operation,
    ReconcileResult,
    ServiceGraph,
    ServicePhase,
    ServiceStatus,
)
from dockyard.deployment.backend import ContainerBackend
from dockyard.deployment.inspector import StateInspector
from dockyard.utils.config import get_config_value
from dockyard.utils.logger import get_logger

logger = get_logger("reconciler")

STOP_TIMEOUT = 10


class Reconciler:
    """Applies lifecycle operations to a service graph through a backend."""

    def __init__(
        self,
        backend: ContainerBackend,
        registry=None,
        max_retries: int | None = None,
        retry_backoff: float | None = None,
        max_workers: int | None = None,
        abort: threading.Event | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        :param backend: Container backend to act on
        :param registry: Optional :class:`AppRegistry` updated after start/destroy
        :param max_retries: Retries per action on transient errors
        :param retry_backoff: Seconds to wait before retry *n* is ``n * retry_backoff``
        :param max_workers: Thread pool size; 1 runs everything in the caller's thread
        :param abort: Event that, once set, stops further actions from being issued
        :param sleep: Sleep function used between retries
        """
        self.backend = backend
        self.registry = registry
        self.max_retries = max(
            0, int(max_retries if max_retries is not None else get_config_value("reconciler.max_retries", 2))
        )
        self.retry_backoff = float(
            retry_backoff if retry_backoff is not None else get_config_value("reconciler.retry_backoff", 0.5)
        )
        self.max_workers = max(
            1, int(max_workers if max_workers is not None else get_config_value("reconciler.max_workers", 1))
        )
        self.abort = abort or threading.Event()
        self._sleep = sleep
        self._lock = threading.Lock()

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def apply(
        self,
        graph: ServiceGraph,
        observed: dict[str, ObservedState],
        operation: Operation,
        force_pull: bool = False,
    ) -> ReconcileResult:
        """Drive ``graph`` towards the terminal state of ``operation``.

        :param graph: Desired state
        :param observed: Snapshot from :class:`StateInspector`; entries for
            services not in the graph are treated as leftovers to stop/remove
        :param operation: Lifecycle operation to apply
        :param force_pull: Pull images even if present (start only)
        :return: Per-service outcome; never raises for per-service failures
        """
        if operation is Operation.RESTART:
            return self.restart(graph, observed)
        if operation is Operation.REBUILD:
            return self.rebuild(graph, observed)

        result = ReconcileResult(operation=operation, app_name=graph.app_name)

        if operation is Operation.START:
            self._start(graph, observed, result, force_pull)
        else:
            self._stop(graph, observed, result, remove=operation is Operation.DESTROY)

        self._update_registry(graph, result)
        self._log_summary(result)
        return result

    def restart(self, graph: ServiceGraph, observed: dict[str, ObservedState]) -> ReconcileResult:
        """Stop then start; straight to start if nothing was running.

        A service that failed (or was held) during the stop step stays failed,
        even though the start step finds it running.
        """
        result = ReconcileResult(operation=Operation.RESTART, app_name=graph.app_name)

        if any(state.is_running or state.status is ServiceStatus.UNKNOWN for state in observed.values()):
            result.merge(self.apply(graph, observed, Operation.STOP))
            observed = StateInspector(self.backend).observe(graph)
        else:
            logger.debug(f"Nothing running in '{graph.app_name}', restart is a start")

        result.merge(self.apply(graph, observed, Operation.START), keep_failures=True)
        return result

    def rebuild(
        self,
        graph: ServiceGraph,
        observed: dict[str, ObservedState],
        reload: Callable[[], ServiceGraph] | None = None,
    ) -> ReconcileResult:
        """Destroy then start with fresh images and containers.

        :param reload: Rebuilds the graph from the descriptor between the two
            steps; the destroy step's graph is reused when omitted
        """
        result = ReconcileResult(operation=Operation.REBUILD, app_name=graph.app_name)
        result.merge(self.apply(graph, observed, Operation.DESTROY))

        if reload is not None and not self.abort.is_set():
            graph = reload()
        fresh = StateInspector(self.backend).observe(graph)
        result.merge(self.apply(graph, fresh, Operation.START, force_pull=True), keep_failures=True)
        return result

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def _start(
        self,
        graph: ServiceGraph,
        observed: dict[str, ObservedState],
        result: ReconcileResult,
        force_pull: bool,
    ) -> None:
        order = graph.topological_order()
        for name in order:
            result.phases[name] = ServicePhase.PLANNED

        pending = [n for n in order if not _is_running(observed.get(n))]
        if pending and not self.abort.is_set():
            try:
                self._call(
                    result,
                    "ensure_network",
                    graph.network,
                    self.backend.ensure_network,
                    graph.network,
                    {"dockyard.project": graph.project, "dockyard.app": graph.app_name},
                )
            except ServiceFailed as e:
                for name in pending:
                    if isinstance(e, OperationAborted):
                        self._fail(result, OperationAborted(name))
                    else:
                        self._fail(result, ServiceFailed(name, f"network unavailable: {e.reason}", e.cause))
                pending_set = set(pending)
                order = [n for n in order if n not in pending_set]

        def start_one(name: str) -> None:
            state = observed.get(name)
            if _is_running(state):
                logger.debug(f"Skipping {name}: already running")
                return

            spec = graph.specs[name]
            container = graph.container_name(name)

            if state is None or not state.exists:
                self._set_phase(result, name, ServicePhase.CREATING)
                have_image = not force_pull and self._call(
                    result, "image_exists", name, self.backend.image_exists, spec.image, mutation=False
                )
                if not have_image:
                    self._call(result, "pull", name, self.backend.pull_image, spec.image)
                self._call(result, "create", name, self.backend.create_container, spec, container, graph.network)

            self._set_phase(result, name, ServicePhase.STARTING)
            self._call(result, "start", name, self.backend.start_container, container)

        self._run(
            order,
            prerequisites=lambda n: graph.specs[n].depends_on,
            action=start_one,
            on_blocked=DependencyFailed,
            done_phase=ServicePhase.RUNNING,
            result=result,
        )

    def _stop(
        self,
        graph: ServiceGraph,
        observed: dict[str, ObservedState],
        result: ReconcileResult,
        remove: bool,
    ) -> None:
        leftovers = [n for n in observed if n not in graph.specs]
        order = leftovers + graph.reverse_order()
        for name in order:
            result.phases[name] = ServicePhase.PLANNED

        def container_for(name: str) -> str:
            state = observed.get(name)
            return state.container_name if state else graph.container_name(name)

        def stop_one(name: str) -> None:
            state = observed.get(name)
            container = container_for(name)

            # an uninspectable container may still be running
            if _is_running(state) or (state is not None and state.status is ServiceStatus.UNKNOWN):
                self._set_phase(result, name, ServicePhase.STOPPING)
                self._call(
                    result, "stop", name, self.backend.stop_container, container, STOP_TIMEOUT, missing_ok=True
                )
                self._set_phase(result, name, ServicePhase.STOPPED)

            if remove and state is not None and state.status is not ServiceStatus.MISSING:
                self._set_phase(result, name, ServicePhase.REMOVING)
                self._call(result, "remove", name, self.backend.remove_container, container, missing_ok=True)

        def prerequisites(name: str) -> list[str]:
            if name in graph.specs:
                return graph.dependents(name)
            return []

        self._run(
            order,
            prerequisites=prerequisites,
            action=stop_one,
            on_blocked=DependencyHeld,
            done_phase=ServicePhase.REMOVED if remove else ServicePhase.STOPPED,
            result=result,
        )

        if remove and result.ok and not self.abort.is_set():
            try:
                self._call(result, "remove_network", graph.network, self.backend.remove_network, graph.network)
            except ServiceFailed as e:
                logger.warning(f"Could not remove network {graph.network}: {e.reason}")

    # =========================================================================
    # EXECUTION
    # =========================================================================

    def _run(
        self,
        order: list[str],
        prerequisites: Callable[[str], object],
        action: Callable[[str], None],
        on_blocked: type[ServiceFailed],
        done_phase: ServicePhase,
        result: ReconcileResult,
    ) -> None:
        """Run ``action`` for every service once its prerequisites resolved.

        A service with a failed prerequisite is never attempted and fails with
        ``on_blocked(service, prerequisite)``.
        """
        prereqs = {}
        for name in order:
            wanted = set(prerequisites(name))
            prereqs[name] = [p for p in order if p in wanted]

        def execute(name: str) -> None:
            failed = [p for p in prereqs[name] if p in result.failed]
            if failed:
                if isinstance(result.failed[failed[0]], OperationAborted):
                    self._fail(result, OperationAborted(name))
                else:
                    self._fail(result, on_blocked(name, failed[0]))
                return
            try:
                action(name)
            except ServiceFailed as e:
                self._fail(result, e)
                return
            with self._lock:
                result.phases[name] = done_phase
                result.succeeded.add(name)

        if self.max_workers == 1:
            for name in order:
                execute(name)
            return

        resolved: set[str] = set()
        submitted: set[str] = set()
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="reconcile") as pool:
            running = {}
            while len(resolved) < len(order):
                for name in order:
                    if name not in submitted and all(p in resolved for p in prereqs[name]):
                        submitted.add(name)
                        running[pool.submit(execute, name)] = name
                try:
                    done, _ = wait(list(running), return_when=FIRST_COMPLETED)
                except KeyboardInterrupt:
                    # workers see the event and fail what is left with OperationAborted
                    logger.warning("Interrupted, waiting for in-flight actions")
                    self.abort.set()
                    continue
                for future in done:
                    name = running.pop(future)
                    future.result()
                    resolved.add(name)

    def _call(
        self,
        result: ReconcileResult,
        verb: str,
        service: str,
        fn: Callable,
        *args,
        mutation: bool = True,
        missing_ok: bool = False,
    ):
        """Invoke a backend call with retries, translating failures to ServiceFailed."""
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            if mutation and self.abort.is_set():
                raise OperationAborted(service)
            if mutation and attempt == 1:
                with self._lock:
                    result.actions.append((verb, service))
            try:
                return fn(*args)
            except KeyboardInterrupt:
                logger.warning(f"Interrupted during {verb} {service}")
                self.abort.set()
                raise OperationAborted(service) from None
            except ContainerNotFound as e:
                if missing_ok:
                    logger.debug(f"{verb} {service}: container already gone")
                    return None
                raise ServiceFailed(service, f"{verb} failed: {e}", e) from e
            except BackendTransientError as e:
                if attempt == attempts:
                    raise ServiceFailed(
                        service, f"{verb} failed after {attempts} attempt(s): {e}", e
                    ) from e
                delay = self.retry_backoff * attempt
                logger.warning(f"{verb} {service} failed ({e}), retrying in {delay:.1f}s")
                self._sleep(delay)
            except BackendError as e:
                raise ServiceFailed(service, f"{verb} failed: {e}", e) from e
        return None

    # =========================================================================
    # BOOKKEEPING
    # =========================================================================

    def _set_phase(self, result: ReconcileResult, name: str, phase: ServicePhase) -> None:
        with self._lock:
            result.phases[name] = phase

    def _fail(self, result: ReconcileResult, error: ServiceFailed) -> None:
        with self._lock:
            result.phases[error.service_name] = ServicePhase.FAILED
            result.failed[error.service_name] = error
            result.succeeded.discard(error.service_name)
        logger.error(f"{error.service_name}: {error.reason}")

    def _update_registry(self, graph: ServiceGraph, result: ReconcileResult) -> None:
        if self.registry is None:
            return
        if result.operation is Operation.START:
            if any(result.phases.get(n) is ServicePhase.RUNNING for n in graph.service_names()):
                self.registry.upsert(
                    AppRecord(
                        name=graph.app_name,
                        root_path=str(graph.root_path),
                        services=tuple(graph.service_names()),
                    )
                )
        elif result.operation is Operation.DESTROY and result.ok:
            self.registry.remove(graph.app_name)

    def _log_summary(self, result: ReconcileResult) -> None:
        verb = result.operation.value
        if result.ok:
            logger.success(f"{verb} '{result.app_name}': {len(result.succeeded)} service(s) ok")
        else:
            logger.error(
                f"{verb} '{result.app_name}': {len(result.failed)} service(s) failed "
                f"({', '.join(sorted(result.failed))})"
            )


def _is_running(state: ObservedState | None) -> bool:
    return state is not None and state.is_running
