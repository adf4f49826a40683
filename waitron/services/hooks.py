"""
Pre- and post-hook execution.

Hooks are executable files under ``<hookpath>/pre-hook/`` and
``<hookpath>/post-hook/``. They run in lexical order, fail-fast, with the
machine's details in their environment.
"""

import os
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

import structlog

from waitron import metrics
from waitron.exceptions import HookExecutionError
from waitron.models import Machine

logger = structlog.get_logger()

PRE_HOOK = "pre-hook"
POST_HOOK = "post-hook"
HOOK_PHASES = (PRE_HOOK, POST_HOOK)


class HookExecutor:
    """Discovers and runs hook scripts for a lifecycle phase."""

    def __init__(self, hook_path: Optional[str]):
        self.hook_path = Path(hook_path) if hook_path else None

    def discover(self, phase: str) -> List[Path]:
        """Executable hooks registered for a phase, in lexical order."""
        if phase not in HOOK_PHASES:
            raise ValueError(f"Unknown hook phase: {phase}")
        if self.hook_path is None:
            return []

        phase_dir = self.hook_path / phase
        if not phase_dir.is_dir():
            return []
        return sorted(
            (p for p in phase_dir.iterdir() if p.is_file() and os.access(p, os.X_OK)),
            key=lambda p: p.name,
        )

    def list_hooks(self) -> List[str]:
        """All hooks as ``<phase>/<name>``."""
        return [f"{phase}/{hook.name}" for phase in HOOK_PHASES for hook in self.discover(phase)]

    def _environment(self, machine: Machine, phase: str) -> Dict[str, str]:
        env = dict(os.environ)
        definition = machine.definition
        env.update(
            WAITRON_HOOK_PHASE=phase,
            WAITRON_HOSTNAME=definition.hostname,
            WAITRON_SHORTNAME=definition.shortname,
            WAITRON_DOMAIN=definition.domain,
            WAITRON_OS=definition.os,
            WAITRON_TOKEN=machine.token,
            WAITRON_RESCUE="1" if machine.rescue else "0",
            WAITRON_MACADDRESSES=",".join(machine.mac_addresses),
            WAITRON_ROLES=",".join(definition.roles),
        )
        return env

    def run(self, phase: str, machine: Machine) -> int:
        """Run every hook of a phase for a machine.

        The first failing hook stops the phase. Hooks that already ran are
        not rolled back.

        Returns:
            Number of hooks run

        Raises:
            HookExecutionError: A hook exited non-zero or could not start
        """
        hooks = self.discover(phase)
        env = self._environment(machine, phase)
        message = f"Cannot execute {phase.replace('-hook', '')} hooks"

        for hook in hooks:
            try:
                result = subprocess.run(
                    [str(hook), machine.hostname],
                    env=env,
                    capture_output=True,
                    text=True,
                )
            except OSError as e:
                metrics.HOOK_RUNS.labels(phase=phase, result="error").inc()
                logger.error("hook_start_failed", phase=phase, hook=hook.name, hostname=machine.hostname, error=str(e))
                raise HookExecutionError(f"Hook {hook} could not be started: {e}", message=message, hook=hook.name) from e

            if result.returncode != 0:
                metrics.HOOK_RUNS.labels(phase=phase, result="failed").inc()
                logger.error(
                    "hook_failed",
                    phase=phase,
                    hook=hook.name,
                    hostname=machine.hostname,
                    returncode=result.returncode,
                    stderr=result.stderr.strip(),
                )
                raise HookExecutionError(
                    f"Hook {hook} exited with {result.returncode}",
                    message=message,
                    hook=hook.name,
                    returncode=result.returncode,
                )

            metrics.HOOK_RUNS.labels(phase=phase, result="ok").inc()
            logger.info("hook_executed", phase=phase, hook=hook.name, hostname=machine.hostname)

        return len(hooks)
