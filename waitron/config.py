"""
Configuration management for Waitron.

Loads the service configuration from a YAML file, with environment
overrides for process-level settings.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from decouple import config as env

from waitron.exceptions import ConfigurationError

DEFAULT_STALE_BUILD_CHECK_FREQUENCY = 300
DEFAULT_STALE_BUILD_THRESHOLD = 3600


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


@dataclass(slots=True)
class BootSettings:
    """Image URL, kernel, initrd set and command line used to net-boot."""

    image_url: Optional[str] = None
    kernel: Optional[str] = None
    initrd: List[str] = field(default_factory=list)
    cmdline: Optional[str] = None
    preseed: Optional[str] = None
    finish: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], prefix: str = "") -> "BootSettings":
        return cls(
            image_url=data.get(f"{prefix}image_url"),
            kernel=data.get(f"{prefix}kernel"),
            initrd=_as_list(data.get(f"{prefix}initrd")),
            cmdline=data.get(f"{prefix}cmdline"),
            preseed=data.get(f"{prefix}preseed"),
            finish=data.get(f"{prefix}finish"),
        )


@dataclass(slots=True)
class WaitronConfig:
    """Waitron configuration."""

    # Manifest and template locations
    template_path: str
    machine_path: str
    vm_path: str = ""
    hook_path: Optional[str] = None
    static_files_path: Optional[str] = None
    base_url: str = "http://localhost:9090"

    # Free-form values exposed to every template
    params: Dict[str, Any] = field(default_factory=dict)

    # Boot settings
    default: BootSettings = field(default_factory=BootSettings)
    rescue: BootSettings = field(default_factory=BootSettings)
    operating_systems: Dict[str, BootSettings] = field(default_factory=dict)

    # Stale build watchdog
    stale_build_threshold_seconds: int = DEFAULT_STALE_BUILD_THRESHOLD
    stale_build_check_frequency: int = DEFAULT_STALE_BUILD_CHECK_FREQUENCY
    stale_build_commands: List[str] = field(default_factory=list)

    # Server
    address: str = "0.0.0.0"
    port: int = 9090

    # Logging
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.vm_path:
            self.vm_path = os.path.join(self.machine_path, "vm")
        if self.stale_build_check_frequency <= 0:
            self.stale_build_check_frequency = DEFAULT_STALE_BUILD_CHECK_FREQUENCY
        if self.stale_build_threshold_seconds < 0:
            raise ConfigurationError(
                f"stale_build_threshold_seconds must not be negative: {self.stale_build_threshold_seconds}"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WaitronConfig":
        """Build configuration from a parsed YAML mapping."""
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration must be a YAML mapping")

        missing = [key for key in ("templatepath", "machinepath") if not data.get(key)]
        if missing:
            raise ConfigurationError(f"Missing required configuration keys: {', '.join(missing)}")

        operating_systems = data.get("operatingsystems") or {}
        if not isinstance(operating_systems, dict):
            raise ConfigurationError("operatingsystems must be a mapping")

        try:
            return cls(
                template_path=str(data["templatepath"]),
                machine_path=str(data["machinepath"]),
                vm_path=str(data.get("vmpath") or ""),
                hook_path=data.get("hookpath"),
                static_files_path=data.get("staticfilespath"),
                base_url=str(data.get("baseurl", "http://localhost:9090")).rstrip("/"),
                params=dict(data.get("params") or {}),
                default=BootSettings.from_dict(data, prefix="default_"),
                rescue=BootSettings.from_dict(data, prefix="rescue_"),
                operating_systems={
                    str(name): BootSettings.from_dict(settings or {})
                    for name, settings in operating_systems.items()
                },
                stale_build_threshold_seconds=int(
                    data.get("stale_build_threshold_seconds", DEFAULT_STALE_BUILD_THRESHOLD)
                ),
                stale_build_check_frequency=int(
                    env(
                        "STALE_BUILD_CHECK_FREQUENCY",
                        default=data.get("stale_build_check_frequency", DEFAULT_STALE_BUILD_CHECK_FREQUENCY),
                        cast=int,
                    )
                ),
                stale_build_commands=_as_list(data.get("stale_build_commands")),
                address=env("WAITRON_ADDRESS", default=data.get("address", "0.0.0.0")),
                port=env("WAITRON_PORT", default=data.get("port", 9090), cast=int),
                log_level=env("WAITRON_LOG_LEVEL", default=data.get("log_level", "INFO")),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration value: {e}") from e

    @classmethod
    def from_file(cls, config_file: str) -> "WaitronConfig":
        """Load configuration from a YAML file."""
        path = Path(config_file)
        if not path.is_file():
            raise ConfigurationError(f"Configuration file not found: {config_file}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_file}: {e}") from e

        return cls.from_dict(data)

    @staticmethod
    def config_file_from_env() -> Optional[str]:
        """Path of the configuration file given by CONFIG_FILE, if any."""
        return env("CONFIG_FILE", default=None)

    def boot_settings_for(self, os_name: str, rescue: bool = False) -> List[BootSettings]:
        """Settings to consult, most specific first, for an OS and boot mode."""
        chain = []
        if rescue:
            chain.append(self.rescue)
        if os_name and os_name in self.operating_systems:
            chain.append(self.operating_systems[os_name])
        chain.append(self.default)
        return chain
