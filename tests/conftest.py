"""Pytest fixtures for Waitron tests.

Provides shared fixtures for testing:
- Manifest, template and hook directories on disk
- Configuration and service root built fresh per test
- Flask application and test client
- A controllable clock for build timing
"""

import os
import stat
import textwrap
from pathlib import Path

import pytest
import yaml

from waitron import create_app
from waitron.config import WaitronConfig
from waitron.services import WaitronService
from waitron.services.registry import StateRegistry

WEB01_MAC = "52:54:00:aa:bb:01"
WEB01_MAC_2 = "52:54:00:aa:bb:02"
DB01_MAC = "52:54:00:cc:dd:01"


class FakeClock:
    """Clock whose time only moves when told to."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def write_executable(path: Path, body: str) -> Path:
    """Write a shell script and mark it executable."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n" + textwrap.dedent(body))
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture(scope="function")
def clock():
    """Provide a controllable clock."""
    return FakeClock()


@pytest.fixture(scope="function")
def waitron_root(tmp_path):
    """Create machine, VM, template and hook directories."""
    machines = tmp_path / "machines"
    vms = machines / "vm"
    templates = tmp_path / "templates"
    hooks = tmp_path / "hooks"
    files = tmp_path / "files"
    for directory in (machines, vms, templates, hooks / "pre-hook", hooks / "post-hook", files):
        directory.mkdir(parents=True, exist_ok=True)

    (machines / "web01.yaml").write_text(yaml.safe_dump({
        "hostname": "web01",
        "domain": "example.com",
        "os": "jammy",
        "interfaces": [
            {
                "name": "eth0",
                "ipaddress": "192.168.1.10",
                "netmask": "255.255.255.0",
                "gateway": "192.168.1.1",
                "vlan": 0,
                "macaddress": WEB01_MAC.upper(),
            },
            {
                "name": "eth1",
                "ipaddress": "192.168.2.10",
                "netmask": "255.255.255.0",
                "dnsname": "web01-storage",
                "macaddress": WEB01_MAC_2,
            },
        ],
        "roles": ["common", "web"],
        "params": {"ntp_server": "ntp.web01.example.com"},
    }))

    (machines / "db01.example.com.yaml").write_text(yaml.safe_dump({
        "os": "focal",
        "kernel": "custom-linux",
        "preseed": "db.preseed.j2",
        "interfaces": [{"name": "eth0", "ipaddress": "10.0.0.5", "macaddress": DB01_MAC}],
        "roles": ["common", "db"],
        "stale_build_threshold_seconds": 60,
        "stale_build_commands": ["echo {{ hostname }}"],
    }))

    (machines / "web01.cloud-init").write_text(textwrap.dedent("""\
        #cloud-config
        hostname: {{ shortname }}
        fqdn: {{ hostname }}.{{ domain }}
        runcmd:
        {% for role in roles %}
          - echo role {{ role }}
        {% endfor %}
        """))

    (vms / "web01.yaml").write_text(yaml.safe_dump({
        "vm": [
            {
                "hostname": "web01-vm1",
                "domain": "example.com",
                "os": "jammy",
                "memory": 4096,
                "vpcu": 2,
                "image": "base.qcow2",
                "interfaces": [{"name": "eth0", "ipaddress": "192.168.1.50"}],
                "roles": ["common"],
                "attach_disks": ["sda"],
                "virt_network": "ovsbr0",
                "cloud_init": ["base-init.sh:text/x-shellscript"],
            }
        ]
    }))

    (templates / "ubuntu.preseed.j2").write_text(textwrap.dedent("""\
        d-i netcfg/get_hostname string {{ shortname }}
        d-i netcfg/get_domain string {{ domain }}
        d-i mirror/http/hostname string {{ params.mirror }}
        {% for interface in interfaces %}
        # {{ interface.name }} {{ interface.ipaddress }}
        {% endfor %}
        d-i preseed/late_command string wget -O- {{ base_url }}/template/finish/{{ hostname }}/{{ token }} | sh
        """))
    (templates / "ubuntu.finish.j2").write_text(textwrap.dedent("""\
        #!/bin/sh
        {% for role in roles %}
        echo {{ role }}
        {% endfor %}
        curl {{ base_url }}/done/{{ hostname }}/{{ token }}
        """))
    (templates / "db.preseed.j2").write_text("d-i undefined {{ machine.no_such_field }}\n")

    (files / "firmware.tar").write_text("firmware")

    return tmp_path


@pytest.fixture(scope="function")
def config_data(waitron_root):
    """Provide a raw configuration mapping."""
    return {
        "templatepath": str(waitron_root / "templates"),
        "machinepath": str(waitron_root / "machines"),
        "hookpath": str(waitron_root / "hooks"),
        "staticfilespath": str(waitron_root / "files"),
        "baseurl": "http://waitron.example.com:9090/",
        "params": {"mirror": "archive.ubuntu.com"},
        "default_image_url": "http://images.example.com/ubuntu/",
        "default_kernel": "linux",
        "default_initrd": "initrd.gz",
        "default_cmdline": (
            "interface=auto url={{ base_url }}/template/preseed/{{ hostname }}/{{ token }} "
            "hostname={{ shortname }} domain={{ domain }}"
        ),
        "default_preseed": "ubuntu.preseed.j2",
        "default_finish": "ubuntu.finish.j2",
        "rescue_image_url": "http://images.example.com/rescue",
        "rescue_kernel": "rescue-vmlinuz",
        "rescue_initrd": ["rescue-initrd.gz", "rescue-modules.gz"],
        "rescue_cmdline": "rescue/enable=true token={{ token }}",
        "operatingsystems": {
            "focal": {"image_url": "http://images.example.com/focal", "initrd": ["focal-initrd.gz"]},
        },
        "stale_build_threshold_seconds": 300,
        "stale_build_check_frequency": 300,
        "stale_build_commands": [],
    }


@pytest.fixture(scope="function")
def config(config_data):
    """Provide a WaitronConfig for the temporary tree."""
    return WaitronConfig.from_dict(config_data)


@pytest.fixture(scope="function")
def service(config, clock):
    """Create a service root with a fresh registry."""
    svc = WaitronService(config, registry=StateRegistry(clock=clock))
    yield svc
    svc.shutdown(timeout=10)


@pytest.fixture(scope="function")
def app(config, service):
    """Create and configure a test Flask application."""
    app = create_app(config, service)
    app.config["TESTING"] = True
    yield app


@pytest.fixture(scope="function")
def client(app):
    """Create a test client."""
    return app.test_client()


@pytest.fixture(scope="function")
def hooks_dir(waitron_root):
    """Directory holding the pre-hook and post-hook folders."""
    return waitron_root / "hooks"


@pytest.fixture(scope="function")
def hook_log(tmp_path):
    """File hooks append to so tests can see what ran."""
    path = tmp_path / "hook.log"
    os.environ["WAITRON_TEST_HOOK_LOG"] = str(path)
    yield path
    os.environ.pop("WAITRON_TEST_HOOK_LOG", None)
