"""Unit tests for the boot descriptor provider.

Tests:
- Descriptor derivation from resolved boot settings
- MAC address normalization
- Rescue descriptors
- Not-building signalling
"""

import pytest

from waitron.exceptions import NotBuildingError
from waitron.models import STATUS_INSTALLING, normalize_mac
from waitron.services.boot import join_url

from tests.conftest import DB01_MAC, WEB01_MAC, WEB01_MAC_2


class TestHelpers:
    """Tests for URL and MAC helpers."""

    @pytest.mark.parametrize("base,path,expected", [
        ("http://images/ubuntu/", "linux", "http://images/ubuntu/linux"),
        ("http://images/ubuntu", "/linux", "http://images/ubuntu/linux"),
        ("http://images/ubuntu", "http://other/linux", "http://other/linux"),
        ("", "linux", "linux"),
    ])
    def test_join_url(self, base, path, expected):
        """Test joining kernel and initrd paths onto an image URL."""
        assert join_url(base, path) == expected

    @pytest.mark.parametrize("raw", ["52:54:00:AA:BB:01", "52-54-00-aa-bb-01", "525400aabb01"])
    def test_normalize_mac(self, raw):
        """Test the accepted MAC address spellings."""
        assert normalize_mac(raw) == WEB01_MAC


class TestBootDescriptor:
    """Tests for serving boot descriptors."""

    def test_boot_descriptor(self, service):
        """Test the descriptor of an install build."""
        token = service.controller.set_build_mode("web01")

        descriptor = service.boot.boot(WEB01_MAC)

        assert descriptor.kernel == "http://images.example.com/ubuntu/linux"
        assert descriptor.initrd == ["http://images.example.com/ubuntu/initrd.gz"]
        assert descriptor.cmdline == (
            f"interface=auto url=http://waitron.example.com:9090/template/preseed/web01/{token} "
            "hostname=web01 domain=example.com"
        )

    def test_any_interface_mac(self, service):
        """Test that every declared MAC of the machine resolves."""
        service.controller.set_build_mode("web01")
        assert service.boot.boot(WEB01_MAC_2).kernel.endswith("/linux")
        assert service.boot.boot("52-54-00-AA-BB-02").kernel.endswith("/linux")

    def test_boot_marks_installing(self, service):
        """Test that serving a descriptor moves the build to Installing."""
        service.controller.set_build_mode("web01")
        service.boot.boot(WEB01_MAC)
        assert service.controller.host_status("web01") == STATUS_INSTALLING

    def test_describe_does_not_mutate(self, service):
        """Test that deriving a descriptor leaves status untouched."""
        token = service.controller.set_build_mode("web01")
        machine = service.registry.lookup_by_token(token)

        service.boot.describe(machine)

        assert machine.status == ""

    def test_os_specific_descriptor(self, service):
        """Test per-OS image URL with a machine kernel override."""
        service.controller.set_build_mode("db01.example.com")

        descriptor = service.boot.boot(DB01_MAC)

        assert descriptor.kernel == "http://images.example.com/focal/custom-linux"
        assert descriptor.initrd == ["http://images.example.com/focal/focal-initrd.gz"]

    def test_rescue_changes_descriptor(self, service):
        """Test that rescue mode serves the rescue boot set for the same MAC."""
        install_token = service.controller.set_build_mode("web01")
        install = service.boot.boot(WEB01_MAC)

        rescue_token = service.controller.set_build_mode("web01", rescue=True)
        rescue = service.boot.boot(WEB01_MAC)

        assert rescue.kernel == "http://images.example.com/rescue/rescue-vmlinuz"
        assert rescue.initrd == [
            "http://images.example.com/rescue/rescue-initrd.gz",
            "http://images.example.com/rescue/rescue-modules.gz",
        ]
        assert rescue.cmdline == f"rescue/enable=true token={rescue_token}"
        assert rescue.kernel != install.kernel
        assert install_token != rescue_token
        assert service.registry.lookup_by_token(rescue_token).hostname == "web01"

    def test_not_building(self, service):
        """Test that unknown MACs signal not building."""
        with pytest.raises(NotBuildingError):
            service.boot.boot("52:54:00:ff:ff:ff")

    def test_not_building_after_done(self, service):
        """Test that a finished build no longer boots."""
        token = service.controller.set_build_mode("web01")
        service.controller.done_build_mode("web01", token)

        with pytest.raises(NotBuildingError):
            service.boot.boot(WEB01_MAC)
