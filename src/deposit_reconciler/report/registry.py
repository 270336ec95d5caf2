"""Registry of known wallet addresses and their display names."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_PATH = Path(__file__).resolve().parent.parent / "resources" / "known_addresses.json"


class RegistryError(Exception):
    """Raised when the known-address registry cannot be loaded."""


class KnownAddressRegistry(Mapping[str, str]):
    """Ordered, read-only mapping of address to display name."""

    def __init__(self, names: Mapping[str, str]) -> None:
        self._names = dict(names)

    def __getitem__(self, address: str) -> str:
        return self._names[address]

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    @property
    def addresses(self) -> frozenset[str]:
        return frozenset(self._names)

    @classmethod
    def from_file(cls, path: Path) -> KnownAddressRegistry:
        """Load a registry from a JSON object of ``{address: name}``.

        Raises:
            RegistryError: If the file is unreadable or not a string mapping.
        """
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise RegistryError(f"Failed to load known addresses from {path}: {e}") from e

        if not isinstance(data, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()
        ):
            raise RegistryError(f"{path} must contain a JSON object of address -> name")

        logger.debug("Loaded %d known addresses from %s", len(data), path)
        return cls(data)


def load_registry(path: Path | None = None) -> KnownAddressRegistry:
    """Load the registry at ``path``, or the bundled default."""
    return KnownAddressRegistry.from_file(path or DEFAULT_REGISTRY_PATH)
