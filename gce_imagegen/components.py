"""Component table.

Maps each buildable artifact (an unconfigured installable package or
binary) to the service it is configured as. The table is fixed; every
entry gets its own image per platform version.
"""

from gce_imagegen.types import ComponentEntry

COMPONENTS: dict[str, str] = {
    "clouddriver": "clouddriver",
    "deck": "deck",
    "echo": "echo",
    "fiat": "fiat",
    "front50": "front50",
    "gate": "gate",
    "igor": "igor",
    "orca": "orca",
    "rosco": "rosco",
    "consul": "consul-server",
    "vault": "vault-server",
    "redis": "redis",
}


def get_components(table: dict[str, str] | None = None) -> list[ComponentEntry]:
    """Return the component table as entries.

    Args:
        table: Optional artifact -> service mapping; defaults to COMPONENTS.

    Returns:
        One ComponentEntry per artifact.
    """
    if table is None:
        table = COMPONENTS
    return [
        ComponentEntry(artifact=artifact, service=service)
        for artifact, service in table.items()
    ]


__all__ = ["COMPONENTS", "get_components"]
