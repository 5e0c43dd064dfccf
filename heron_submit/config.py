"""
Configuration assembly for topology submission.

Builds one immutable Config from four layers, later layers overriding
earlier ones on key collision:

    defaults < cluster files < command line < topology-derived

and then expands ${NAME} placeholders against the merged result.

Cluster files are YAML documents read from the config path:
cluster.yaml, defaults.yaml, statemgr.yaml, packing.yaml, scheduler.yaml
and uploader.yaml. Missing files contribute nothing.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Optional

import yaml

from heron_submit import keys
from heron_submit.errors import ConfigurationError
from heron_submit.topology import TopologyDescriptor

logger = logging.getLogger(__name__)


CLUSTER_CONFIG_FILES = (
    "cluster.yaml",
    "defaults.yaml",
    "statemgr.yaml",
    "packing.yaml",
    "scheduler.yaml",
    "uploader.yaml",
)

# ${NAME} where NAME is a variable, a config key, or an environment variable
PLACEHOLDER_PATTERN = re.compile(r"\$\{([A-Za-z0-9_.\-]+)\}")

# Short variable names usable inside config values
WELL_KNOWN_VARIABLES = {
    "HERON_HOME": keys.HERON_HOME,
    "HERON_CONF": keys.HERON_CONF,
    "HERON_BIN": keys.HERON_BIN,
    "HERON_LIB": keys.HERON_LIB,
    "CLUSTER": keys.CLUSTER,
    "ROLE": keys.ROLE,
    "ENVIRON": keys.ENVIRON,
    "TOPOLOGY": keys.TOPOLOGY_NAME,
}

DEFAULT_MAX_EXPANSION_PASSES = 10

DEFAULTS: dict[str, Any] = {
    keys.HERON_BIN: "${HERON_HOME}/bin",
    keys.HERON_LIB: "${HERON_HOME}/lib",
    keys.STATE_MANAGER_CLASS: "localfs",
    keys.LAUNCHER_CLASS: "local",
    keys.PACKING_CLASS: "round_robin",
    keys.UPLOADER_CLASS: "localfs",
    keys.STATEMGR_ROOT_PATH: "${HOME}/.herondata/repository/state/${CLUSTER}",
    keys.STATEMGR_INITIALIZE_TREE: True,
    keys.LOCALFS_UPLOADER_DIRECTORY: (
        "${HOME}/.herondata/repository/topologies/${CLUSTER}/${ROLE}/${TOPOLOGY}"
    ),
    keys.LOCAL_LAUNCHER_WORKING_DIRECTORY: (
        "${HOME}/.herondata/topologies/${CLUSTER}/${ROLE}/${TOPOLOGY}"
    ),
}


class Config(Mapping[str, Any]):
    """
    Immutable, ordered key -> value mapping.

    Built with Config.builder(); never modified after build().
    """

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: dict[str, Any] = dict(values or {})

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Config({len(self._values)} keys)"

    @staticmethod
    def builder() -> "ConfigBuilder":
        return ConfigBuilder()

    def get_str(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self._values.get(key, default)
        return None if value is None else str(value)

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        value = self._values.get(key, default)
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Config key '{key}' is not an integer: {value!r}")

    def get_bool(self, key: str, default: bool = False) -> bool:
        return get_bool(self._values, key, default)

    def dump(self) -> str:
        """One 'key: value' line per entry, for debug logging."""
        return "\n".join(f"{k}: {v!r}" for k, v in self._values.items())


class ConfigBuilder:
    """Accumulates layers; a later put() of an existing key overrides it."""

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}

    def put(self, key: str, value: Any) -> "ConfigBuilder":
        self._values[key] = value
        return self

    def put_all(self, values: Mapping[str, Any]) -> "ConfigBuilder":
        for key, value in values.items():
            self._values[key] = value
        return self

    def build(self) -> Config:
        return Config(self._values)


# =============================================================================
# Expansion
# =============================================================================


def _lookup(name: str, values: Mapping[str, Any], env: Mapping[str, str]) -> Any:
    """Resolve a placeholder name: well-known variable, then config key, then env."""
    mapped = WELL_KNOWN_VARIABLES.get(name)
    if mapped is not None and mapped in values:
        return values[mapped]
    if name in values:
        return values[name]
    if name in env:
        return env[name]
    raise KeyError(name)


def _substitute(key: str, value: str, values: Mapping[str, Any], env: Mapping[str, str]) -> str:
    def replace(match: re.Match) -> str:
        name = match.group(1)
        try:
            resolved = _lookup(name, values, env)
        except KeyError:
            raise ConfigurationError(
                f"Config key '{key}' references undefined variable ${{{name}}}"
            ) from None
        if resolved is None:
            raise ConfigurationError(
                f"Config key '{key}' references ${{{name}}}, which has no value"
            )
        return str(resolved)

    return PLACEHOLDER_PATTERN.sub(replace, value)


def expand(
    config: Mapping[str, Any],
    env: Optional[Mapping[str, str]] = None,
    max_passes: int = DEFAULT_MAX_EXPANSION_PASSES,
) -> Config:
    """
    Resolve ${NAME} placeholders in every string value.

    Each pass substitutes against the values produced by the previous
    pass, so nested references resolve one level per pass. Expansion stops
    at the first pass that changes nothing.

    Args:
        config: Merged configuration
        env: Environment used as the last lookup source (defaults to os.environ)
        max_passes: Upper bound on passes, guards against reference cycles

    Returns:
        Expanded Config with no placeholders left

    Raises:
        ConfigurationError: On an undefined reference, or if placeholders
                            remain (cyclic reference)
    """
    if env is None:
        env = os.environ

    current = dict(config)
    for _ in range(max_passes):
        updated = {
            key: _substitute(key, value, current, env) if isinstance(value, str) else value
            for key, value in current.items()
        }
        if updated == current:
            break
        current = updated

    unresolved = sorted(
        key for key, value in current.items()
        if isinstance(value, str) and PLACEHOLDER_PATTERN.search(value)
    )
    if unresolved:
        raise ConfigurationError(
            f"Could not expand config within {max_passes} passes "
            f"(cyclic reference?): {', '.join(unresolved)}"
        )

    return Config(current)


# =============================================================================
# Layers
# =============================================================================


def _flatten(data: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested mappings into dotted keys."""
    flat: dict[str, Any] = {}
    for key, value in data.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(_flatten(value, full_key))
        else:
            flat[full_key] = value
    return flat


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one cluster YAML file. Missing files yield an empty mapping."""
    if not path.exists():
        logger.debug(f"Config file not present, skipping: {path}")
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML syntax in {path}: {e}")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Failed to read config file {path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return _flatten(data)


def resolve_config_path(heron_home: str, config_path: str) -> Path:
    """A relative config path is taken relative to heron home."""
    path = Path(config_path).expanduser()
    if not path.is_absolute():
        path = Path(heron_home).expanduser() / path
    return path


def load_cluster_config(heron_home: str, config_path: str) -> dict[str, Any]:
    """
    Load the cluster files from the config path.

    Args:
        heron_home: Directory where heron is installed
        config_path: Directory containing the cluster YAML files

    Returns:
        Flat dict of all settings, files later in CLUSTER_CONFIG_FILES
        overriding earlier ones

    Raises:
        ConfigurationError: If a file is invalid YAML or not a mapping
    """
    conf_dir = resolve_config_path(heron_home, config_path)
    if not conf_dir.is_dir():
        raise ConfigurationError(f"Config path is not a directory: {conf_dir}")

    values: dict[str, Any] = {
        keys.HERON_HOME: str(Path(heron_home).expanduser()),
        keys.HERON_CONF: str(conf_dir),
    }
    for filename in CLUSTER_CONFIG_FILES:
        values.update(_load_yaml_file(conf_dir / filename))
    return values


def default_configs(heron_home: str, config_path: str) -> Config:
    """Built-in defaults overlaid with the cluster files."""
    return (
        Config.builder()
        .put_all(DEFAULTS)
        .put_all(load_cluster_config(heron_home, config_path))
        .build()
    )


def parse_config_overrides(values: Optional[Iterable[str]]) -> dict[str, Any]:
    """
    Parse command line overrides of the form key=value.

    Values are parsed as YAML scalars, so "4" becomes 4 and "true" True.

    Raises:
        ConfigurationError: If an item is not key=value
    """
    overrides: dict[str, Any] = {}
    for item in values or ():
        key, sep, raw = item.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ConfigurationError(
                f"Invalid config override '{item}'. Expected key=value"
            )
        try:
            value = yaml.safe_load(raw) if raw.strip() else ""
        except yaml.YAMLError:
            value = raw
        if isinstance(value, (dict, list)):
            value = raw
        overrides[key] = value
    return overrides


def command_line_configs(
    cluster: str,
    role: str,
    environ: str,
    overrides: Optional[Mapping[str, Any]] = None,
) -> Config:
    """Config parameters given on the command line."""
    return (
        Config.builder()
        .put(keys.CLUSTER, cluster)
        .put(keys.ROLE, role)
        .put(keys.ENVIRON, environ)
        .put_all(overrides or {})
        .build()
    )


def package_type(topology_jar_file: str) -> str:
    """'jar' when the user submitted a plain jar, 'tar' otherwise."""
    return "jar" if Path(topology_jar_file).name.endswith(".jar") else "tar"


def topology_configs(
    topology_package: str,
    topology_jar_file: str,
    topology_defn_file: str,
    topology: TopologyDescriptor,
) -> Config:
    """Config derived from the topology and its files."""
    return (
        Config.builder()
        .put(keys.TOPOLOGY_ID, topology.id)
        .put(keys.TOPOLOGY_NAME, topology.name)
        .put(keys.TOPOLOGY_DEFINITION_FILE, topology_defn_file)
        .put(keys.TOPOLOGY_PACKAGE_FILE, topology_package)
        .put(keys.TOPOLOGY_JAR_FILE, topology_jar_file)
        .put(keys.TOPOLOGY_PACKAGE_TYPE, package_type(topology_jar_file))
        .build()
    )


def validate_config(config: Mapping[str, Any]) -> None:
    """
    Check that every required key is present and non-empty.

    Raises:
        ConfigurationError: Listing every missing key
    """
    missing = [k for k in keys.REQUIRED_KEYS if config.get(k) in (None, "")]
    if missing:
        raise ConfigurationError(f"Missing required config: {', '.join(missing)}")


def build_config(
    heron_home: str,
    config_path: str,
    cluster: str,
    role: str,
    environ: str,
    topology_package: str,
    topology_jar_file: str,
    topology_defn_file: str,
    topology: TopologyDescriptor,
    overrides: Optional[Mapping[str, Any]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Config:
    """
    Build the final, expanded submission config.

    Returns:
        Expanded and validated Config

    Raises:
        ConfigurationError: If a layer cannot be loaded, expansion fails,
                            or a required key is missing
    """
    merged = (
        Config.builder()
        .put_all(default_configs(heron_home, config_path))
        .put_all(command_line_configs(cluster, role, environ, overrides))
        .put_all(topology_configs(
            topology_package, topology_jar_file, topology_defn_file, topology))
        .build()
    )

    config = expand(merged, env=env)
    validate_config(config)
    return config


# =============================================================================
# Accessors
# =============================================================================


def get_bool(config: Mapping[str, Any], key: str, default: bool = False) -> bool:
    """Read a flag that may be a YAML bool or a string such as 'true'."""
    value = config.get(key, default)
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def cluster(config: Mapping[str, Any]) -> str:
    return config[keys.CLUSTER]


def role(config: Mapping[str, Any]) -> str:
    return config[keys.ROLE]


def environ(config: Mapping[str, Any]) -> str:
    return config[keys.ENVIRON]


def topology_name(config: Mapping[str, Any]) -> str:
    return config[keys.TOPOLOGY_NAME]


def topology_package_file(config: Mapping[str, Any]) -> str:
    return config[keys.TOPOLOGY_PACKAGE_FILE]


def state_manager_class(config: Mapping[str, Any]) -> str:
    return config[keys.STATE_MANAGER_CLASS]


def launcher_class(config: Mapping[str, Any]) -> str:
    return config[keys.LAUNCHER_CLASS]


def packing_class(config: Mapping[str, Any]) -> str:
    return config[keys.PACKING_CLASS]


def uploader_class(config: Mapping[str, Any]) -> str:
    return config[keys.UPLOADER_CLASS]
