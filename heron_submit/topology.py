"""
Topology definition loading.

A topology definition file describes the job being submitted:

    id: word-count-7f3a
    name: word-count
    spouts:
      - name: sentences
        parallelism: 2
    bolts:
      - name: counter
        parallelism: 4
    config:
      topology.stmgrs: 2

YAML and JSON files are supported. The loaded TopologyDescriptor is
immutable and shared read-only by every submission stage.
"""

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from heron_submit.errors import TopologyDefinitionError


TOPOLOGY_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]+$")

COMPONENT_KINDS = ("spouts", "bolts")


def _freeze(value: Any) -> Any:
    """Recursively wrap mappings and lists in read-only containers."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


@dataclass(frozen=True)
class TopologyDescriptor:
    """
    The deserialized job definition.

    Attributes:
        id: Unique identifier of this topology build
        name: Human-readable topology name, used as the running-job key
        spec: Structural and resource definition (spouts, bolts, config)
    """
    id: str
    name: str
    spec: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self):
        if not self.id:
            raise TopologyDefinitionError("Topology id is required")
        if not self.name:
            raise TopologyDefinitionError("Topology name is required")
        # names become path components in the state and package stores
        if not TOPOLOGY_NAME_PATTERN.match(self.name) or self.name in (".", ".."):
            raise TopologyDefinitionError(
                f"Invalid topology name '{self.name}'. "
                "Only letters, digits, '_', '.' and '-' are allowed."
            )
        object.__setattr__(self, "spec", _freeze(self.spec))

    def components(self) -> dict[str, int]:
        """Component name -> parallelism, spouts first, in declaration order."""
        result: dict[str, int] = {}
        for kind in COMPONENT_KINDS:
            for component in self.spec.get(kind, ()):
                result[component["name"]] = component.get("parallelism", 1)
        return result

    def topology_config(self) -> Mapping[str, Any]:
        """User-supplied topology config (e.g. topology.stmgrs)."""
        return self.spec.get("config", MappingProxyType({}))

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict form, used when the launcher registers the topology."""
        def thaw(value):
            if isinstance(value, Mapping):
                return {k: thaw(v) for k, v in value.items()}
            if isinstance(value, tuple):
                return [thaw(v) for v in value]
            return value

        return {"id": self.id, "name": self.name, **thaw(self.spec)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TopologyDescriptor":
        """
        Build a descriptor from a parsed definition.

        Raises:
            TopologyDefinitionError: If required fields are missing or
                                     components are malformed
        """
        if not isinstance(data, Mapping):
            raise TopologyDefinitionError("Topology definition must be a mapping")

        spec = {k: v for k, v in data.items() if k not in ("id", "name")}
        for kind in COMPONENT_KINDS:
            components = spec.get(kind, [])
            if not isinstance(components, list):
                raise TopologyDefinitionError(f"'{kind}' must be a list")
            spec[kind] = [_normalize_component(kind, c) for c in components]

        config = spec.get("config", {})
        if not isinstance(config, Mapping):
            raise TopologyDefinitionError("'config' must be a mapping")

        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            spec=spec,
        )


def _normalize_component(kind: str, component: Any) -> dict[str, Any]:
    if not isinstance(component, Mapping) or "name" not in component:
        raise TopologyDefinitionError(f"Every entry in '{kind}' needs a name")
    parallelism = component.get("parallelism", 1)
    if not isinstance(parallelism, int) or isinstance(parallelism, bool) or parallelism < 1:
        raise TopologyDefinitionError(
            f"Component '{component['name']}': parallelism must be a positive integer"
        )
    return {**component, "parallelism": parallelism}


def load_topology(path: Path | str) -> TopologyDescriptor:
    """
    Load a topology definition file.

    Args:
        path: Path to a .yaml, .yml or .json definition

    Returns:
        The loaded TopologyDescriptor

    Raises:
        TopologyDefinitionError: If the file is missing, unparseable,
                                 or does not describe a valid topology
    """
    path = Path(path)
    if not path.exists():
        raise TopologyDefinitionError(f"Topology definition not found: {path}")

    suffix = path.suffix.lower()
    try:
        with open(path, encoding="utf-8") as f:
            if suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            elif suffix == ".json":
                data = json.load(f)
            else:
                raise TopologyDefinitionError(
                    f"Unsupported topology definition format: {suffix}"
                )
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise TopologyDefinitionError(f"Failed to parse {path}: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise TopologyDefinitionError(f"Failed to read {path}: {e}") from e

    return TopologyDescriptor.from_dict(data or {})
