"""Machine and VM manifest lookup.

Manifests are YAML files named after the host they describe:

    <machinepath>/<hostname>.yaml    machine definition
    <vmpath>/<hostname>.yaml         VMs hosted on <hostname> (``vm:`` list)
"""

from pathlib import Path
from typing import Any, Dict, List

import structlog
import yaml

from waitron.exceptions import DefinitionError, DefinitionNotFoundError
from waitron.models import MachineDefinition, VMDefinition

logger = structlog.get_logger()


class ManifestSource:
    """Resolves hostnames to immutable machine and VM definitions."""

    def __init__(self, machine_path: str, vm_path: str):
        self.machine_path = Path(machine_path)
        self.vm_path = Path(vm_path)

    def _manifest_file(self, base: Path, hostname: str) -> Path:
        # Hostnames never contain path separators
        if not hostname or "/" in hostname or "\\" in hostname or hostname.startswith("."):
            raise DefinitionNotFoundError(f"Invalid hostname: {hostname!r}")
        return base / f"{hostname}.yaml"

    def _load(self, path: Path) -> Dict[str, Any]:
        if not path.is_file():
            raise DefinitionNotFoundError(f"No manifest at {path}")
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise DefinitionError(f"Unable to read manifest {path}: {e}") from e
        if not isinstance(data, dict):
            raise DefinitionError(f"Manifest {path} is not a mapping")
        return data

    def resolve_by_hostname(self, hostname: str) -> MachineDefinition:
        """Load the machine definition for a hostname.

        Raises:
            DefinitionNotFoundError: No manifest exists for the hostname
            DefinitionError: Manifest exists but cannot be parsed
        """
        data = self._load(self._manifest_file(self.machine_path, hostname))
        definition = MachineDefinition.from_dict(hostname, data)
        logger.debug("machine_definition_loaded", hostname=definition.hostname)
        return definition

    def resolve_by_vm_hostname(self, hostname: str) -> List[VMDefinition]:
        """Load the VM definitions hosted on a hypervisor hostname."""
        data = self._load(self._manifest_file(self.vm_path, hostname))
        vms = data.get("vm") or []
        if not isinstance(vms, list):
            raise DefinitionError(f"VM manifest for {hostname} must contain a 'vm' list")
        return [VMDefinition.from_dict(vm) for vm in vms if isinstance(vm, dict)]

    def list_definitions(self) -> List[str]:
        """Hostnames of every machine manifest, sorted."""
        if not self.machine_path.is_dir():
            raise DefinitionError(f"Machine path {self.machine_path} is not a directory")
        return sorted(p.stem for p in self.machine_path.glob("*.yaml") if p.is_file())
