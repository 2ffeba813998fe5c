"""
Bolt Executor

Runs a parsed playbook: plays one after another, tasks in declaration order,
then the handlers that were notified. Nothing runs concurrently; the only
waiting points are connection calls and the delay between retries.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from bolt.connections.base import Connection, create_connection
from bolt.engine.conditions import evaluate_condition
from bolt.engine.context import PlayContext, RegisteredResult
from bolt.engine.errors import (
    BoltError,
    HandlerExecutionError,
    InterpolationError,
    ModuleError,
    PlaybookValidationError,
    TaskExecutionError,
)
from bolt.engine.playbook import (
    Play,
    Playbook,
    Task,
    expand_shorthand,
    load_playbook_file,
    playbook_warnings,
    validate_playbook,
)
from bolt.engine.results import RunResult, RunStats, TaskResult, TaskStatus
from bolt.engine.templating import interpolate_params
from bolt.facts import gather_facts
from bolt.modules.base import Module, ModuleRegistry, ModuleResult, get_default_registry
from bolt.output import QuietReporter, Reporter


logger = logging.getLogger(__name__)


@dataclass
class ExecutorOptions:
    """Run-wide settings."""

    dry_run: bool = False
    debug: bool = False
    roles_dir: Optional[Union[str, Path]] = None
    # Applied on top of the merged play variables
    extra_vars: Dict[str, Any] = field(default_factory=dict)
    color: bool = True


class Executor:
    """
    Playbook executor.

    Collaborators are injected so the engine can run against in-memory
    connections and modules:

    - registry: name -> Module class lookup
    - reporter: console output
    - facts_gatherer: ``async (connection) -> dict``
    - connection_factory: ``(connection_type, host) -> Connection``
    - sleep: coroutine used between retry attempts
    """

    def __init__(
        self,
        registry: Optional[ModuleRegistry] = None,
        reporter: Optional[Reporter] = None,
        options: Optional[ExecutorOptions] = None,
        facts_gatherer: Callable[[Connection], Awaitable[Dict[str, Any]]] = gather_facts,
        connection_factory: Callable[[str, str], Connection] = create_connection,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.registry = registry if registry is not None else get_default_registry()
        self.reporter = reporter or QuietReporter()
        self.options = options or ExecutorOptions()
        self.facts_gatherer = facts_gatherer
        self.connection_factory = connection_factory
        self.sleep = sleep

    async def run(self, playbook: Playbook) -> RunResult:
        """
        Run every play in order.

        The first play that fails stops the run; later plays never start.
        Statistics cover everything that did run.

        Raises:
            PlaybookValidationError: If the playbook does not validate
        """
        errors = validate_playbook(playbook, self.registry)
        if errors:
            raise PlaybookValidationError(errors, playbook.path)
        for warning in playbook_warnings(playbook):
            self.reporter.warning(warning)

        result = RunResult(playbook_path=playbook.path)
        stats = result.stats
        self.reporter.playbook_start(playbook.path)

        for index, play in enumerate(playbook.plays, start=1):
            stats.plays += 1
            try:
                await self.run_play(play, stats)
            except BoltError as e:
                label = f"play {index}" + (f" ({play.name})" if play.name else "")
                logger.debug("Aborting run after %s: %s", label, e)
                result.success = False
                result.errors.append(f"{label}: {e}")
                self.reporter.error(f"{label}: {e}")
                break

        stats.finish()
        self.reporter.recap(stats)
        return result

    async def run_file(self, path: Union[str, Path]) -> RunResult:
        """Load a playbook file (roles from ``options.roles_dir``) and run it."""
        playbook = load_playbook_file(path, roles_dir=self.options.roles_dir)
        return await self.run(playbook)

    async def run_play(self, play: Play, stats: Optional[RunStats] = None) -> PlayContext:
        """
        Run one play against its target and return the finished context.

        Raises:
            BoltError: Connection, fact gathering, task or handler failure
        """
        stats = stats if stats is not None else RunStats()
        self.reporter.play_start(play)

        ctx = PlayContext.for_play(play, self.options.extra_vars)
        connection = self.connection_factory(play.connection, play.hosts)
        ctx.connection = connection

        try:
            await connection.connect()
            logger.debug("Connected to %s", connection.describe())

            if play.gather_facts:
                ctx.set_facts(await self.facts_gatherer(connection))

            for task in play.tasks:
                stats.tasks += 1
                self.reporter.task_start(task.display_name)
                try:
                    task_result = await self.run_task(task, ctx)
                except TaskExecutionError as e:
                    stats.record(TaskStatus.FAILED)
                    self.reporter.task_result(play.hosts, TaskStatus.FAILED, str(e))
                    if not task.ignore_errors:
                        raise
                    self.reporter.info("...ignoring")
                    continue
                stats.record(task_result.status)

            if ctx.notified_handlers:
                self.reporter.section("RUNNING HANDLERS")
                await self.run_handlers(ctx, stats)
        finally:
            try:
                await connection.close()
            except (BoltError, OSError) as e:
                logger.warning("Error closing %s: %s", connection.describe(), e)

        return ctx

    async def run_task(self, task: Task, ctx: PlayContext) -> TaskResult:
        """
        Run a task (or handler): condition, then loop or single execution.

        Raises:
            TaskExecutionError: If the task failed
        """
        if task.when is not None and not evaluate_condition(task.when, ctx):
            logger.debug("Skipping %s: condition '%s' is false", task.display_name, task.when)
            self.reporter.task_result(ctx.play.hosts, TaskStatus.SKIPPED, "conditional")
            return TaskResult(status=TaskStatus.SKIPPED)

        become = task.should_become(ctx.play.become)
        become_user = task.effective_become_user(ctx.play.become_user)

        with ctx.escalation(become, become_user):
            if task.loop:
                return await self.run_task_loop(task, ctx)
            return await self.run_single_task(task, ctx)

    async def run_task_loop(self, task: Task, ctx: PlayContext) -> TaskResult:
        """
        Run a task once per loop item.

        Stops at the first failing item. The loop variable and ``loop_index``
        are gone from the play vars afterwards, whatever happened.
        """
        changed = False
        skipped = True

        with ctx.loop_vars(task.loop_var) as set_item:
            for index, item in enumerate(task.loop):
                set_item(item, index)
                result = await self.run_single_task(task, ctx)
                changed = changed or result.changed
                skipped = skipped and result.status == TaskStatus.SKIPPED

        if skipped:
            status = TaskStatus.SKIPPED
        else:
            status = TaskStatus.CHANGED if changed else TaskStatus.OK
        return TaskResult(status=status, changed=changed, data={'items': len(task.loop)})

    async def run_single_task(self, task: Task, ctx: PlayContext) -> TaskResult:
        """
        Run a task exactly once (plus retries).

        Raises:
            TaskExecutionError: Unknown module, interpolation failure,
                invalid arguments, or module failure after all attempts
        """
        name = task.display_name
        params = expand_shorthand(task.module, task.params)

        module_class = self.registry.get(task.module)
        if module_class is None:
            raise TaskExecutionError(name, f"unknown module: {task.module}")

        try:
            params = interpolate_params(params, ctx)
        except InterpolationError as e:
            raise TaskExecutionError(name, str(e), e) from e
        except Exception as e:
            raise TaskExecutionError(name, f"interpolation failed: {e}", e) from e

        if self.options.dry_run:
            self.reporter.task_result(ctx.play.hosts, TaskStatus.SKIPPED, "dry run")
            return TaskResult(status=TaskStatus.SKIPPED, data={'params': params})

        module = module_class(params, ctx, role_path=task.role_path)
        error = module.validate_args()
        if error:
            raise TaskExecutionError(name, error)

        outcome = await self._invoke(task, module, ctx)

        if task.register:
            ctx.register(task.register, RegisteredResult(
                changed=outcome.changed,
                message=outcome.message,
                data=outcome.data,
            ))

        if outcome.changed and task.notify:
            ctx.notify(task.notify)

        status = TaskStatus.CHANGED if outcome.changed else TaskStatus.OK
        show_msg = task.module == 'debug' or self.options.debug
        self.reporter.task_result(ctx.play.hosts, status, outcome.message if show_msg else None)
        return TaskResult(status=status, changed=outcome.changed, data=outcome.data)

    async def _invoke(self, task: Task, module: Module, ctx: PlayContext) -> ModuleResult:
        """Call the module up to ``retries + 1`` times."""
        attempts = max(task.retries, 0) + 1
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                result = await module.run()
                return self._apply_result_conditions(task, result, ctx)
            except Exception as e:
                last_error = e
                if attempt < attempts:
                    logger.debug(
                        "%s failed (attempt %d/%d), retrying in %ss: %s",
                        task.display_name, attempt, attempts, task.delay, e,
                    )
                    await self.sleep(task.delay)

        raise TaskExecutionError(task.display_name, str(last_error), last_error) from last_error

    def _apply_result_conditions(self, task: Task, result: ModuleResult, ctx: PlayContext) -> ModuleResult:
        """Apply ``failed_when`` and ``changed_when`` to a module result."""
        if task.failed_when is None and task.changed_when is None:
            return result

        scope = SimpleNamespace(
            vars=dict(ctx.vars, result={
                'changed': result.changed,
                'message': result.message,
                'data': result.data,
            }),
            registered=ctx.registered,
        )

        if task.failed_when is not None and _check(task.failed_when, scope):
            raise ModuleError(task.module, f"failed_when condition met: {task.failed_when}")

        if task.changed_when is not None:
            result.changed = _check(task.changed_when, scope)

        return result

    async def run_handlers(self, ctx: PlayContext, stats: Optional[RunStats] = None) -> None:
        """
        Run notified handlers in declaration order, each at most once.

        Raises:
            HandlerExecutionError: On the first handler failure
        """
        stats = stats if stats is not None else RunStats()

        for handler in ctx.play.handlers:
            if handler.name not in ctx.notified_handlers:
                continue

            stats.tasks += 1
            self.reporter.task_start(f"handler: {handler.name}")
            try:
                result = await self.run_task(handler, ctx)
            except TaskExecutionError as e:
                stats.record(TaskStatus.FAILED)
                self.reporter.task_result(ctx.play.hosts, TaskStatus.FAILED, str(e))
                cause = e.cause or e
                raise HandlerExecutionError(handler.name, str(cause), cause) from e
            stats.record(result.status)


def _check(condition: Union[str, bool], scope: Any) -> bool:
    if isinstance(condition, bool):
        return condition
    return evaluate_condition(str(condition), scope)
