"""
Build lifecycle controller.

    Idle --set_build_mode--> BuildRequested --boot/preseed--> Installing
         --finish--> Installed --done--> Done
    any active state --cancel--> Cancelled

Done and Cancelled both remove the registry entry. Rescue is a flag set
before the build is requested; it selects the rescue boot settings.
"""

import hmac
from typing import Dict, List, Optional

import structlog

from waitron import metrics
from waitron.config import WaitronConfig
from waitron.definitions import ManifestSource
from waitron.exceptions import AuthorizationError, DefinitionError, HookExecutionError, NotBuildingError
from waitron.logging_config import token_prefix
from waitron.models import STATUS_INSTALLED, STATUS_INSTALLING, Machine, MachineDefinition
from waitron.services.hooks import POST_HOOK, HookExecutor
from waitron.services.registry import StateRegistry

logger = structlog.get_logger()


def _first(values) -> Optional[object]:
    for value in values:
        if value:
            return value
    return None


class BuildController:
    """Moves machines in and out of build mode."""

    def __init__(
        self,
        config: WaitronConfig,
        registry: StateRegistry,
        source: ManifestSource,
        hooks: HookExecutor,
    ):
        self.config = config
        self.registry = registry
        self.source = source
        self.hooks = hooks

    def prepare(self, definition: MachineDefinition, rescue: bool = False) -> Machine:
        """Resolve the boot settings of a definition into a new Machine.

        Machine overrides win over per-OS settings, which win over the
        defaults. Rescue builds consult the rescue settings first.

        Raises:
            DefinitionError: Kernel, initrd or image URL cannot be resolved
        """
        chain = self.config.boot_settings_for(definition.os, rescue=rescue)
        if not rescue:
            # Machine level overrides apply to installs only
            chain.insert(0, definition)

        image_url = _first(s.image_url for s in chain)
        kernel = _first(s.kernel for s in chain)
        initrd = _first(s.initrd for s in chain)
        cmdline = _first(s.cmdline for s in chain) or ""
        preseed = _first(s.preseed for s in chain)
        finish = _first(s.finish for s in chain)

        missing = [
            name for name, value in (("image_url", image_url), ("kernel", kernel), ("initrd", initrd))
            if not value
        ]
        if not definition.mac_addresses:
            # Boot descriptors are looked up by MAC only
            missing.append("macaddress")
        if missing:
            raise DefinitionError(
                f"{definition.hostname}: unable to resolve {', '.join(missing)} for booting",
                message=f"Failed to set build mode on {definition.hostname}",
            )

        params = dict(self.config.params)
        params.update(definition.params)

        threshold = definition.stale_build_threshold_seconds
        commands = definition.stale_build_commands

        return Machine(
            definition=definition,
            image_url=str(image_url),
            kernel=str(kernel),
            initrd=[str(i) for i in initrd],
            cmdline=str(cmdline),
            preseed=preseed,
            finish=finish,
            params=params,
            rescue=rescue,
            stale_build_threshold_seconds=int(
                threshold if threshold is not None else self.config.stale_build_threshold_seconds
            ),
            stale_build_commands=list(commands if commands is not None else self.config.stale_build_commands),
        )

    def set_build_mode(self, hostname: str, rescue: bool = False) -> str:
        """Put a host into build mode.

        Returns:
            The build token

        Raises:
            DefinitionNotFoundError: No definition for the hostname
            DefinitionError: Definition lacks what is needed to boot
        """
        definition = self.source.resolve_by_hostname(hostname)
        machine = self.prepare(definition, rescue=rescue)
        token, _ = self.registry.register(machine)

        mode = "rescue" if rescue else "install"
        metrics.BUILDS_REQUESTED.labels(mode=mode).inc()
        logger.info(
            "build_mode_set",
            hostname=machine.hostname,
            mode=mode,
            token=token_prefix(token),
            macaddresses=machine.mac_addresses,
        )
        return token

    def authorize(self, hostname: str, token: str) -> Machine:
        """Return the active build for a hostname if the token matches.

        Raises:
            NotBuildingError: Hostname is not in build mode
            AuthorizationError: Token differs from the one issued for the hostname
        """
        machine = self.registry.lookup_by_hostname(hostname)
        if machine is None:
            raise NotBuildingError(f"{hostname} is not in build mode")

        if not hmac.compare_digest(machine.token.encode(), (token or "").encode()):
            logger.warning("invalid_token", hostname=hostname, token=token_prefix(token))
            raise AuthorizationError(f"Token {token_prefix(token)} does not match build of {hostname}")

        if self.registry.lookup_by_token(token) is not machine:
            raise NotBuildingError(f"Build of {hostname} ended concurrently")
        return machine

    def done_build_mode(self, hostname: str, token: str) -> Machine:
        """Finish a build and take the host out of build mode."""
        self.authorize(hostname, token)
        machine = self.registry.remove(token)
        metrics.BUILDS_FINISHED.labels(outcome="done").inc()
        logger.info("build_done", hostname=hostname, token=token_prefix(token), status=machine.status)
        return machine

    def cancel_build_mode(self, hostname: str, token: str) -> Machine:
        """Cancel a build, then run the post-hooks.

        The removal is committed before the hooks run. A hook failure is
        raised to the caller but does not restore the build.

        Raises:
            HookExecutionError: A post-hook failed after cancellation
        """
        self.authorize(hostname, token)
        machine = self.registry.remove(token)
        metrics.BUILDS_FINISHED.labels(outcome="cancelled").inc()
        logger.info("build_cancelled", hostname=hostname, token=token_prefix(token))

        try:
            self.hooks.run(POST_HOOK, machine)
        except HookExecutionError as e:
            e.message = "Build cancelled but post hooks failed"
            raise
        return machine

    def mark_installing(self, machine: Machine) -> None:
        """Boot or preseed activity was observed for a build."""
        # Installed never moves back to Installing
        if self.registry.set_status(machine.token, STATUS_INSTALLING, unless=STATUS_INSTALLED):
            logger.info("build_installing", hostname=machine.hostname)

    def mark_installed(self, machine: Machine) -> None:
        """The finish artifact was served for a build."""
        if self.registry.set_status(machine.token, STATUS_INSTALLED):
            logger.info("build_installed", hostname=machine.hostname)

    def host_status(self, hostname: str) -> Optional[str]:
        """Build status of a host, or None when not building or not yet known."""
        machine = self.registry.lookup_by_hostname(hostname)
        if machine is None or not machine.status:
            return None
        return machine.status

    def statuses(self) -> Dict[str, str]:
        return self.registry.statuses()

    def list_machines(self) -> List[str]:
        return self.source.list_definitions()
