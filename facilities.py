"""Static catalog of parking facilities and their space-type partitions."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Sequence, Tuple

from errors import ConfigurationError

DEFAULT_FACILITIES: List[Dict[str, Any]] = [
    {
        "name": "CESI_INTERIEUR",
        "total_spaces": 50,
        "types": {"normal": 42, "handicape": 3, "electrique": 5},
    },
    {
        "name": "PARKING_ETUDIANT",
        "total_spaces": 200,
        "types": {"normal": 200},
    },
]


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


@dataclass(frozen=True)
class FacilityDefinition:
    name: str
    total_capacity: int
    space_types: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ConfigurationError("Facility name must be a non-empty string.")
        if not _is_positive_int(self.total_capacity):
            raise ConfigurationError(
                f"Facility {self.name!r}: total capacity must be a positive integer, "
                f"got {self.total_capacity!r}."
            )
        if not self.space_types:
            raise ConfigurationError(f"Facility {self.name!r} declares no space types.")
        for space_type, capacity in self.space_types.items():
            if not _is_positive_int(capacity):
                raise ConfigurationError(
                    f"Facility {self.name!r}: capacity of space type {space_type!r} "
                    f"must be a positive integer, got {capacity!r}."
                )
        allocated = sum(self.space_types.values())
        if allocated > self.total_capacity:
            raise ConfigurationError(
                f"Facility {self.name!r}: space types allocate {allocated} spaces "
                f"but total capacity is {self.total_capacity}."
            )
        # Freeze the mapping so the definition stays read-only after load.
        object.__setattr__(self, "space_types", MappingProxyType(dict(self.space_types)))

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "FacilityDefinition":
        try:
            return cls(
                name=raw["name"],
                total_capacity=raw["total_spaces"],
                space_types=raw["types"],
            )
        except KeyError as exc:
            raise ConfigurationError(f"Facility entry is missing the {exc.args[0]!r} key.") from None
        except (TypeError, AttributeError) as exc:
            raise ConfigurationError(f"Malformed facility entry {raw!r}: {exc}") from exc


class FacilityRegistry:
    """Read-only, ordered collection of facilities."""

    def __init__(self, facilities: Iterable[FacilityDefinition]) -> None:
        ordered: List[FacilityDefinition] = []
        seen = set()
        for facility in facilities:
            if facility.name in seen:
                raise ConfigurationError(f"Duplicate facility name {facility.name!r}.")
            seen.add(facility.name)
            ordered.append(facility)
        if not ordered:
            raise ConfigurationError("The facility registry is empty.")
        self._facilities: Tuple[FacilityDefinition, ...] = tuple(ordered)

    def __iter__(self) -> Iterator[FacilityDefinition]:
        return iter(self._facilities)

    def __len__(self) -> int:
        return len(self._facilities)

    def get(self, name: str) -> FacilityDefinition:
        for facility in self._facilities:
            if facility.name == name:
                return facility
        raise KeyError(name)

    def names(self) -> List[str]:
        return [facility.name for facility in self._facilities]

    def space_keys(self) -> Iterator[Tuple[FacilityDefinition, str, int]]:
        """Yield (facility, space type, sub-capacity) in configuration order."""
        for facility in self._facilities:
            for space_type, capacity in facility.space_types.items():
                yield facility, space_type, capacity

    @classmethod
    def from_entries(cls, entries: Sequence[Mapping[str, Any]]) -> "FacilityRegistry":
        return cls(FacilityDefinition.from_dict(entry) for entry in entries)


def load_registry(path: Path | str | None = None) -> FacilityRegistry:
    """Build the registry from a JSON catalog, or the built-in one when no path is given."""
    if path is None:
        return FacilityRegistry.from_entries(DEFAULT_FACILITIES)

    json_path = Path(path)
    if not json_path.exists():
        raise ConfigurationError(f"Facility catalog not found at {json_path}.")
    try:
        entries = json.loads(json_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Facility catalog {json_path} is not valid JSON: {exc}") from exc
    if not isinstance(entries, list):
        raise ConfigurationError(f"Facility catalog {json_path} must contain a JSON list.")
    return FacilityRegistry.from_entries(entries)
