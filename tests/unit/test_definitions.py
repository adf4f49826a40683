"""Unit tests for manifest lookup."""

import pytest

from waitron.definitions import ManifestSource
from waitron.exceptions import DefinitionError, DefinitionNotFoundError

from tests.conftest import WEB01_MAC, WEB01_MAC_2


@pytest.fixture
def source(config):
    return ManifestSource(config.machine_path, config.vm_path)


class TestMachineDefinitions:
    """Tests for machine manifests."""

    def test_resolve(self, source):
        """Test loading a machine definition."""
        definition = source.resolve_by_hostname("web01")

        assert definition.hostname == "web01"
        assert definition.domain == "example.com"
        assert definition.os == "jammy"
        assert [i.name for i in definition.interfaces] == ["eth0", "eth1"]
        assert definition.roles == ("common", "web")

    def test_mac_addresses_normalized(self, source):
        """Test that interface MACs are normalized."""
        assert source.resolve_by_hostname("web01").mac_addresses == [WEB01_MAC, WEB01_MAC_2]

    def test_fqdn_manifest(self, source):
        """Test that short name and domain derive from an FQDN."""
        definition = source.resolve_by_hostname("db01.example.com")

        assert definition.hostname == "db01.example.com"
        assert definition.shortname == "db01"
        assert definition.domain == "example.com"
        assert definition.stale_build_threshold_seconds == 60

    def test_keyed_by_requested_hostname(self, source, waitron_root):
        """Test that a declared FQDN only supplies the short name and domain."""
        (waitron_root / "machines" / "app01.yaml").write_text("hostname: app01.example.com\n")

        definition = source.resolve_by_hostname("app01")

        assert definition.hostname == "app01"
        assert definition.shortname == "app01"
        assert definition.domain == "example.com"

    def test_not_found(self, source):
        """Test that unknown hosts raise DefinitionNotFoundError."""
        with pytest.raises(DefinitionNotFoundError):
            source.resolve_by_hostname("nope")

    @pytest.mark.parametrize("hostname", ["../etc/passwd", "a/b", ".hidden", ""])
    def test_path_like_hostnames_rejected(self, source, hostname):
        """Test that hostnames cannot escape the manifest directory."""
        with pytest.raises(DefinitionNotFoundError):
            source.resolve_by_hostname(hostname)

    def test_invalid_yaml(self, source, waitron_root):
        """Test that malformed manifests raise DefinitionError."""
        (waitron_root / "machines" / "broken.yaml").write_text("interfaces: [unclosed\n")
        with pytest.raises(DefinitionError):
            source.resolve_by_hostname("broken")

    def test_non_mapping_manifest(self, source, waitron_root):
        """Test that list manifests raise DefinitionError."""
        (waitron_root / "machines" / "listy.yaml").write_text("- one\n- two\n")
        with pytest.raises(DefinitionError):
            source.resolve_by_hostname("listy")

    def test_list_definitions(self, source):
        """Test listing every defined host."""
        assert source.list_definitions() == ["db01.example.com", "web01"]

    def test_to_dict(self, source):
        """Test the serialized definition."""
        data = source.resolve_by_hostname("web01").to_dict()

        assert data["hostname"] == "web01"
        assert data["interfaces"][0]["macaddress"] == WEB01_MAC
        assert data["params"] == {"ntp_server": "ntp.web01.example.com"}


class TestVMDefinitions:
    """Tests for VM manifests."""

    def test_resolve_vms(self, source):
        """Test loading the VMs hosted on a machine."""
        vms = source.resolve_by_vm_hostname("web01")

        assert len(vms) == 1
        assert vms[0].hostname == "web01-vm1"
        assert vms[0].memory == 4096
        assert vms[0].virt_network == "ovsbr0"

    def test_vpcu_spelling(self, source):
        """Test that the legacy vpcu key maps to vcpu."""
        assert source.resolve_by_vm_hostname("web01")[0].vcpu == 2

    def test_no_vm_manifest(self, source):
        """Test that hosts without VMs raise DefinitionNotFoundError."""
        with pytest.raises(DefinitionNotFoundError):
            source.resolve_by_vm_hostname("db01.example.com")

    def test_vm_key_not_a_list(self, source, waitron_root):
        """Test that a malformed vm key raises DefinitionError."""
        (waitron_root / "machines" / "vm" / "hv01.yaml").write_text("vm: nope\n")
        with pytest.raises(DefinitionError):
            source.resolve_by_vm_hostname("hv01")
