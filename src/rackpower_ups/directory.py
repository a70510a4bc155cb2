"""Register address <-> name directory with approximate name lookup."""

from __future__ import annotations

import logging
from importlib import resources
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

import yaml

from .errors import ConfigurationError


_LOG = logging.getLogger(__name__)

UNKNOWN_REGISTER = "Unknown Register"
NOT_FOUND = 0

_DATA_FILE = "registers.yaml"


def levenshtein(source: str, target: str) -> int:
    """Classic dynamic-programming edit distance (insert, delete, substitute)."""

    rows = len(source) + 1
    cols = len(target) + 1
    d = [[0] * cols for _ in range(rows)]
    for i in range(rows):
        d[i][0] = i
    for j in range(cols):
        d[0][j] = j

    for i in range(1, rows):
        for j in range(1, cols):
            cost = 0 if source[i - 1] == target[j - 1] else 1
            d[i][j] = min(
                d[i - 1][j] + 1,
                d[i][j - 1] + 1,
                d[i - 1][j - 1] + cost,
            )
    return d[rows - 1][cols - 1]


class RegisterDirectory:
    """Immutable table of register addresses and their human-readable names."""

    def __init__(self, entries: Union[Mapping[int, str], Iterable[Tuple[int, str]]]) -> None:
        pairs = entries.items() if isinstance(entries, Mapping) else entries
        self._names: Dict[int, str] = {}
        for address, name in pairs:
            address = int(address)
            if not (0 <= address <= 0xFFFF):
                raise ConfigurationError(f"Register address {address} out of range [0, 65535]")
            self._names[address] = str(name)

        # Reverse index; the first address wins for duplicate names.
        self._addresses: Dict[str, int] = {}
        for address, name in self._names.items():
            self._addresses.setdefault(name.casefold(), address)

    @classmethod
    def default(cls) -> "RegisterDirectory":
        """Load the register table shipped with the package."""

        text = resources.files(__package__).joinpath("data").joinpath(_DATA_FILE).read_text(encoding="utf-8")
        return cls(_parse_entries(text, _DATA_FILE))

    @classmethod
    def from_yaml(cls, path: Path) -> "RegisterDirectory":
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise ConfigurationError(f"Register table not found: {path}") from exc
        return cls(_parse_entries(text, str(path)))

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def lookup_by_address(self, address: int) -> str:
        return self._names.get(address, UNKNOWN_REGISTER)

    def lookup_by_name(self, name: str) -> int:
        """Return the address for *name*, falling back to the closest name.

        Returns ``NOT_FOUND`` (0) only when the directory is empty.
        """

        exact = self._addresses.get(name.casefold())
        if exact is not None:
            return exact
        match = self.closest(name)
        if match is None:
            return NOT_FOUND
        address, matched, distance = match
        _LOG.debug("Fuzzy register match %r -> %r (distance %d)", name, matched, distance)
        return address

    def closest(self, name: str) -> Optional[Tuple[int, str, int]]:
        """Return ``(address, name, distance)`` of the nearest directory name."""

        query = name.casefold()
        best: Optional[Tuple[int, str, int]] = None
        for address, candidate in self._names.items():
            distance = levenshtein(query, candidate.casefold())
            # Strict comparison keeps the earliest entry on ties.
            if best is None or distance < best[2]:
                best = (address, candidate, distance)
                if distance == 0:
                    break
        return best

    # ------------------------------------------------------------------
    # Container protocol
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, address: object) -> bool:
        return address in self._names

    def __iter__(self) -> Iterator[Tuple[int, str]]:
        return iter(self._names.items())

    def names(self) -> List[str]:
        return list(self._names.values())


def _parse_entries(text: str, source: str) -> List[Tuple[int, str]]:
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in register table: {source}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError("Register table root must be a mapping")
    rows = data.get("registers", [])
    if not isinstance(rows, list):
        raise ConfigurationError("registers section must be a list")

    entries: List[Tuple[int, str]] = []
    for idx, row in enumerate(rows):
        if not isinstance(row, dict) or "address" not in row or "name" not in row:
            raise ConfigurationError(f"Register entry #{idx} in {source} must define 'address' and 'name'")
        try:
            address = int(row["address"])
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Register entry #{idx} in {source} has a non-integer address") from exc
        entries.append((address, str(row["name"])))
    return entries


__all__ = ["RegisterDirectory", "levenshtein", "UNKNOWN_REGISTER", "NOT_FOUND"]
