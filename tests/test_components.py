"""Tests for the component table."""

from gce_imagegen.components import COMPONENTS, get_components
from gce_imagegen.types import ComponentEntry


class TestComponentTable:
    """Test COMPONENTS and get_components."""

    def test_default_table(self) -> None:
        """Every artifact should appear once with its service."""
        entries = get_components()

        assert len(entries) == len(COMPONENTS) == 12
        assert ComponentEntry("consul", "consul-server") in entries
        assert ComponentEntry("vault", "vault-server") in entries
        assert ComponentEntry("clouddriver", "clouddriver") in entries

    def test_services_are_unique(self) -> None:
        """Log files are per service, so services must not collide."""
        services = [e.service for e in get_components()]
        assert len(services) == len(set(services))

    def test_custom_table(self) -> None:
        """A custom mapping should be converted as given."""
        entries = get_components({"consul": "consul-server"})
        assert entries == [ComponentEntry(artifact="consul", service="consul-server")]
