"""
Stale build watchdog.

Periodically claims builds that have run past their stale threshold and
runs each one's recovery commands as independent background work. Recovery
never touches the registry and never retries the build; outcomes are logged.
"""

import shlex
import subprocess
import threading
from typing import List, Optional

import structlog

from waitron import metrics
from waitron.exceptions import RenderError
from waitron.logging_config import token_prefix
from waitron.models import Machine
from waitron.services.registry import StateRegistry
from waitron.services.tasks import TaskTracker
from waitron.services.templates import TemplateRenderer

logger = structlog.get_logger()


class StaleBuildWatchdog:
    """Sweeps the registry for stale builds on a fixed interval."""

    def __init__(
        self,
        registry: StateRegistry,
        tasks: TaskTracker,
        renderer: TemplateRenderer,
        interval: int = 300,
        base_url: str = "",
    ):
        self.registry = registry
        self.tasks = tasks
        self.renderer = renderer
        self.interval = interval
        self.base_url = base_url
        self._sweep_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the sweep loop on a daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            logger.warning("watchdog_already_running")
            return

        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="waitron-watchdog", daemon=True)
        self._thread.start()
        logger.info("watchdog_started", interval_seconds=self.interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the sweep loop. Recovery work already started keeps running."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        logger.info("watchdog_stopped")

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.sweep()
            except Exception as e:
                logger.error("watchdog_sweep_failed", error=str(e))

    def sweep(self) -> List[Machine]:
        """Claim stale builds and start their recovery.

        A sweep that starts while another is still running is skipped.

        Returns:
            Builds claimed by this sweep
        """
        if not self._sweep_lock.acquire(blocking=False):
            logger.warning("watchdog_sweep_skipped", reason="previous sweep still running")
            return []

        try:
            stale = self.registry.collect_stale()
            for machine in stale:
                metrics.STALE_BUILDS_DETECTED.inc()
                logger.warning(
                    "stale_build_detected",
                    hostname=machine.hostname,
                    token=token_prefix(machine.token),
                    threshold_seconds=machine.stale_build_threshold_seconds,
                    commands=len(machine.stale_build_commands),
                )
                self.tasks.submit(self.recover, machine)
            return stale
        finally:
            self._sweep_lock.release()

    def recover(self, machine: Machine) -> bool:
        """Run a machine's recovery commands in order, stopping at the first failure.

        Returns:
            True if every command succeeded
        """
        context = machine.template_context(self.base_url)

        for template in machine.stale_build_commands:
            try:
                command = self.renderer.render_string(template, context)
                argv = shlex.split(command)
            except (RenderError, ValueError) as e:
                metrics.RECOVERY_COMMANDS.labels(result="invalid").inc()
                logger.error("recovery_command_invalid", hostname=machine.hostname, command=template, error=str(e))
                return False

            if not argv:
                continue

            try:
                result = subprocess.run(argv, capture_output=True, text=True)
            except OSError as e:
                metrics.RECOVERY_COMMANDS.labels(result="error").inc()
                logger.error("recovery_command_failed", hostname=machine.hostname, command=command, error=str(e))
                return False

            if result.returncode != 0:
                metrics.RECOVERY_COMMANDS.labels(result="failed").inc()
                logger.error(
                    "recovery_command_failed",
                    hostname=machine.hostname,
                    command=command,
                    returncode=result.returncode,
                    stderr=result.stderr.strip(),
                )
                return False

            metrics.RECOVERY_COMMANDS.labels(result="ok").inc()
            logger.info("recovery_command_executed", hostname=machine.hostname, command=command)

        return True
