"""
High-level engine API.

ScriptEngine ties the lexer, parser and interpreter to one set of host
collaborators and one configuration:

    from retroscript import ScriptEngine

    engine = ScriptEngine()
    result = await engine.run('''
        set $total = 0
        foreach $n in [1, 2, 3] { set $total = $total + $n }
        print Total: $total
    ''')
    if result.success:
        print(result.output)
    else:
        print(result.error)

Runs publish lifecycle events on the host bus: script:execute when a run
starts, then script:complete or script:error when it ends.
"""

import asyncio
import itertools
import logging
from typing import Any, Dict, List, Optional

from .ast import Program
from .config import DEFAULT_AUTOEXEC_PATHS, EngineConfig
from .errors import CollaboratorError, ScriptSyntaxError
from .host import HostError, HostServices
from .lexer import tokenize
from .parser import parse
from .runtime.builtins import BuiltinRegistry
from .runtime.context import ExecutionContext
from .runtime.interpreter import ExecutionResult, Interpreter

logger = logging.getLogger(__name__)


SAMPLE_AUTOEXEC = """\
# RetrOS autoexec script
# Runs automatically when the system boots.

print Welcome to RetrOS!
notify RetrOS startup complete!
play notify

set $bootTime = call now
print Boot time: $bootTime

# Launch an application on boot:
# launch calculator

print Autoexec complete!
"""


class ScriptRun:
    """Handle on a started script."""

    def __init__(self, script_id: str, ctx: Optional[ExecutionContext],
                 future: "asyncio.Future[ExecutionResult]"):
        self.script_id = script_id
        self.ctx = ctx
        self.future = future

    @property
    def done(self) -> bool:
        return self.future.done()

    async def wait(self) -> ExecutionResult:
        return await self.future

    def cancel(self) -> None:
        """
        Stop the run.

        Its event subscriptions are revoked immediately; the run finishes
        with a cancelled result at its next suspension or statement.
        """
        if self.ctx is None or self.done:
            return
        self.ctx.governor.cancel()
        self.ctx.revoke_subscriptions()


class ScriptEngine:
    """
    Runs RetroScript programs against a set of host collaborators.

    Several scripts may run concurrently on one event loop; each has its
    own environment, governor and subscriptions.
    """

    def __init__(self, host: Optional[HostServices] = None,
                 config: Optional[EngineConfig] = None,
                 registry: Optional[BuiltinRegistry] = None):
        self.host = host or HostServices.in_memory()
        self.config = config or EngineConfig()
        self.interpreter = Interpreter(self.host, self.config.limits, registry)
        self._runs: Dict[str, ScriptRun] = {}
        self._ids = itertools.count(1)

    @property
    def running(self) -> List[str]:
        """Ids of scripts that have not finished."""
        return list(self._runs)

    def parse(self, source: str, filename: Optional[str] = None) -> Program:
        """
        Tokenize and parse source.

        Raises:
            ScriptSyntaxError: On the first lexical or syntax error
        """
        return parse(tokenize(source, filename), filename, source)

    def start(self, source: str, variables: Optional[Dict[str, Any]] = None,
              script_id: Optional[str] = None, timeout: Optional[float] = None,
              filename: Optional[str] = None) -> ScriptRun:
        """
        Start a script on the running event loop and return its handle.

        A script that fails to parse never executes; its handle is already
        done with the syntax error as result.
        """
        script_id = script_id or f"script_{next(self._ids)}"
        limits = self.config.limits.with_timeout(timeout)
        self.host.events.publish("script:execute",
                                 {"scriptId": script_id, "source": filename or "inline"})

        try:
            program = self.parse(source, filename)
        except ScriptSyntaxError as e:
            future = asyncio.get_running_loop().create_future()
            future.set_result(self._report(script_id, ExecutionResult(success=False, error=e)))
            return ScriptRun(script_id, None, future)

        ctx = self.interpreter.create_context(program, script_id, variables, limits)
        logger.debug("script_started", extra={"script": script_id,
                                              "statements": len(program.statements)})
        task = asyncio.ensure_future(self._execute(ctx))
        run = ScriptRun(script_id, ctx, task)
        self._runs[script_id] = run
        task.add_done_callback(lambda _: self._runs.pop(script_id, None))
        return run

    async def _execute(self, ctx: ExecutionContext) -> ExecutionResult:
        result = await self.interpreter.run(ctx)
        return self._report(ctx.script_id, result)

    def _report(self, script_id: str, result: ExecutionResult) -> ExecutionResult:
        if result.success:
            logger.debug("script_complete", extra={"script": script_id})
            self.host.events.publish("script:complete",
                                     {"scriptId": script_id, "result": result.result})
        else:
            logger.info("script_failed", extra={"script": script_id,
                                                "kind": result.error_kind,
                                                "error": result.error_message})
            self.host.events.publish("script:error", {
                "scriptId": script_id,
                "error": result.error_message,
                "kind": result.error_kind,
                "line": result.line or 0,
            })
        return result

    async def run(self, source: str, variables: Optional[Dict[str, Any]] = None,
                  script_id: Optional[str] = None, timeout: Optional[float] = None,
                  filename: Optional[str] = None) -> ExecutionResult:
        """Run a script to completion."""
        handle = self.start(source, variables, script_id, timeout, filename)
        return await handle.wait()

    async def run_file(self, path: str, variables: Optional[Dict[str, Any]] = None,
                       timeout: Optional[float] = None) -> ExecutionResult:
        """Load a script through the host file system and run it."""
        try:
            source = self.host.files.read(path)
        except HostError as e:
            logger.warning("script_load_failed", extra={"path": path, "error": str(e)})
            return ExecutionResult(success=False,
                                   error=CollaboratorError(f"failed to load script: {e}"))
        return await self.run(source, variables, timeout=timeout, filename=path)

    def stop_all(self) -> int:
        """Cancel every running script; returns how many were cancelled."""
        runs = list(self._runs.values())
        for handle in runs:
            handle.cancel()
        if runs:
            logger.info("scripts_stopped", extra={"count": len(runs)})
        return len(runs)

    # =========================================================================
    # Autoexec
    # =========================================================================

    def find_autoexec(self) -> Optional[str]:
        """First configured autoexec path that exists, or None."""
        for path in self.config.autoexec_paths:
            try:
                if self.host.files.exists(path):
                    return path
            except HostError as e:
                logger.debug("autoexec_check_failed", extra={"path": path, "error": str(e)})
        return None

    async def run_autoexec(self) -> Optional[ExecutionResult]:
        """
        Run the boot script, if any.

        Only the first existing autoexec path runs. The script sees
        $AUTOEXEC = true and $BOOT_TIME (epoch milliseconds).
        """
        path = self.find_autoexec()
        if path is None:
            logger.info("autoexec_not_found")
            return None

        boot_time = self.host.clock.now()
        self.host.events.publish("autoexec:start", {"path": path, "timestamp": boot_time})
        result = await self.run_file(
            path,
            variables={"AUTOEXEC": True, "BOOT_TIME": boot_time},
            timeout=self.config.autoexec_timeout_seconds,
        )
        if result.success:
            self.host.events.publish("autoexec:complete", {
                "path": path, "success": True, "timestamp": self.host.clock.now(),
            })
        else:
            self.host.events.publish("autoexec:error", {
                "path": path, "error": result.error_message, "timestamp": self.host.clock.now(),
            })
        return result

    def create_sample_autoexec(self, path: str = DEFAULT_AUTOEXEC_PATHS[0],
                               content: Optional[str] = None) -> None:
        """Write a starter autoexec script through the host file system."""
        self.host.files.write(path, content or SAMPLE_AUTOEXEC)
        logger.info("autoexec_created", extra={"path": path})


async def run_script(source: str, variables: Optional[Dict[str, Any]] = None,
                     host: Optional[HostServices] = None) -> ExecutionResult:
    """
    Run source once on a fresh engine.

        result = await run_script('print "hi"')
        assert result.output == ["hi"]
    """
    return await ScriptEngine(host).run(source, variables)
