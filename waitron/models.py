"""Waitron data model.

- MachineDefinition / VMDefinition: immutable manifests loaded from YAML
- Machine: the runtime build entity tracked by the state registry
- BootDescriptor: kernel, initrd list and command line for a net-booting host
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple


# Build status values
STATUS_UNSET = ""
STATUS_INSTALLING = "Installing"
STATUS_INSTALLED = "Installed"

_MAC_HEX = re.compile(r"^[0-9a-f]{12}$")


def normalize_mac(mac: str) -> str:
    """Normalize a MAC address to lower-case, colon separated form.

    Accepts colons, dashes or no separators at all.
    """
    if not mac:
        return ""
    compact = mac.strip().lower().replace(":", "").replace("-", "").replace(".", "")
    if not _MAC_HEX.match(compact):
        return mac.strip().lower()
    return ":".join(compact[i:i + 2] for i in range(0, 12, 2))


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


@dataclass(frozen=True, slots=True)
class Interface:
    """Network interface of a machine or VM."""

    name: str
    ipaddress: Optional[str] = None
    netmask: Optional[str] = None
    gateway: Optional[str] = None
    vlan: Optional[int] = None
    dnsname: Optional[str] = None
    macaddress: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Interface":
        return cls(
            name=str(data.get("name", "")),
            ipaddress=data.get("ipaddress"),
            netmask=data.get("netmask"),
            gateway=data.get("gateway"),
            vlan=data.get("vlan"),
            dnsname=data.get("dnsname"),
            macaddress=normalize_mac(data["macaddress"]) if data.get("macaddress") else None,
        )


@dataclass(frozen=True, slots=True)
class MachineDefinition:
    """Static facts about a machine, owned by the definition source."""

    hostname: str
    shortname: str
    domain: str
    os: str = ""
    interfaces: Tuple[Interface, ...] = ()
    roles: Tuple[str, ...] = ()
    attach_disks: Tuple[str, ...] = ()
    virt_network: Optional[str] = None
    cloud_init: Tuple[str, ...] = ()
    preseed: Optional[str] = None
    finish: Optional[str] = None
    image_url: Optional[str] = None
    kernel: Optional[str] = None
    initrd: Tuple[str, ...] = ()
    cmdline: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)
    stale_build_threshold_seconds: Optional[int] = None
    stale_build_commands: Optional[Tuple[str, ...]] = None

    @classmethod
    def from_dict(cls, hostname: str, data: Dict[str, Any]) -> "MachineDefinition":
        """Build a definition from a parsed manifest.

        The definition is keyed by the hostname it was resolved for. A
        ``hostname`` inside the manifest only feeds the short name and domain.

        Args:
            hostname: Hostname the manifest was resolved for (may be an FQDN)
            data: Parsed YAML mapping

        Returns:
            MachineDefinition
        """
        declared = str(data.get("hostname") or hostname)
        shortname, _, derived_domain = declared.partition(".")
        commands = data.get("stale_build_commands")

        return cls(
            hostname=hostname,
            shortname=str(data.get("shortname") or shortname),
            domain=str(data.get("domain") or derived_domain),
            os=str(data.get("os") or data.get("operatingsystem") or ""),
            interfaces=tuple(Interface.from_dict(i) for i in _as_list(data.get("interfaces")) if isinstance(i, dict)),
            roles=tuple(str(r) for r in _as_list(data.get("roles"))),
            attach_disks=tuple(str(d) for d in _as_list(data.get("attach_disks"))),
            virt_network=data.get("virt_network"),
            cloud_init=tuple(str(c) for c in _as_list(data.get("cloud_init"))),
            preseed=data.get("preseed"),
            finish=data.get("finish"),
            image_url=data.get("image_url"),
            kernel=data.get("kernel"),
            initrd=tuple(str(i) for i in _as_list(data.get("initrd"))),
            cmdline=data.get("cmdline"),
            params=dict(data.get("params") or {}),
            stale_build_threshold_seconds=data.get("stale_build_threshold_seconds"),
            stale_build_commands=tuple(_as_list(commands)) if commands is not None else None,
        )

    @property
    def mac_addresses(self) -> List[str]:
        """MAC addresses of all interfaces that declare one, in interface order."""
        return [i.macaddress for i in self.interfaces if i.macaddress]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class VMDefinition:
    """A virtual machine hosted on a hypervisor machine."""

    hostname: str
    domain: str = ""
    os: str = ""
    memory: Optional[int] = None
    vcpu: Optional[int] = None
    image: Optional[str] = None
    interfaces: Tuple[Interface, ...] = ()
    roles: Tuple[str, ...] = ()
    attach_disks: Tuple[str, ...] = ()
    virt_network: Optional[str] = None
    cloud_init: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VMDefinition":
        return cls(
            hostname=str(data.get("hostname", "")),
            domain=str(data.get("domain") or ""),
            os=str(data.get("os") or ""),
            memory=data.get("memory"),
            # Older manifests spell it "vpcu"
            vcpu=data.get("vcpu", data.get("vpcu")),
            image=data.get("image"),
            interfaces=tuple(Interface.from_dict(i) for i in _as_list(data.get("interfaces")) if isinstance(i, dict)),
            roles=tuple(str(r) for r in _as_list(data.get("roles"))),
            attach_disks=tuple(str(d) for d in _as_list(data.get("attach_disks"))),
            virt_network=data.get("virt_network"),
            cloud_init=tuple(str(c) for c in _as_list(data.get("cloud_init"))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class BootDescriptor:
    """Boot instructions handed to the network-boot protocol layer."""

    kernel: str
    initrd: List[str]
    cmdline: str

    def to_dict(self) -> Dict[str, Any]:
        return {"kernel": self.kernel, "initrd": list(self.initrd), "cmdline": self.cmdline}


@dataclass(slots=True)
class Machine:
    """A machine in build mode.

    Wraps the immutable definition with the mutable build fields. Only the
    state registry mutates these fields, and only under its lock.
    """

    definition: MachineDefinition
    image_url: str
    kernel: str
    initrd: List[str]
    cmdline: str
    preseed: Optional[str] = None
    finish: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)
    rescue: bool = False
    token: str = ""
    status: str = STATUS_UNSET
    build_start: float = 0.0
    stale_build_threshold_seconds: int = 3600
    stale_build_commands: List[str] = field(default_factory=list)
    recovery_started: Optional[float] = None

    @property
    def hostname(self) -> str:
        return self.definition.hostname

    @property
    def mac_addresses(self) -> List[str]:
        return self.definition.mac_addresses

    def template_context(self, base_url: str = "") -> Dict[str, Any]:
        """Variables available to installer, command line and recovery templates."""
        definition = self.definition
        machine = definition.to_dict()
        machine.update(
            token=self.token,
            status=self.status,
            rescue=self.rescue,
            image_url=self.image_url,
            kernel=self.kernel,
            initrd=list(self.initrd),
            preseed=self.preseed,
            finish=self.finish,
            params=dict(self.params),
        )
        return {
            "machine": machine,
            "hostname": definition.hostname,
            "shortname": definition.shortname,
            "domain": definition.domain,
            "os": definition.os,
            "token": self.token,
            "rescue": self.rescue,
            "base_url": base_url,
            "params": dict(self.params),
            "interfaces": machine["interfaces"],
            "roles": list(definition.roles),
        }
