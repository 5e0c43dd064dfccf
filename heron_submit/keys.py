"""Configuration keys read by the submitter and the built-in plugins."""

# Command line
CLUSTER = "heron.config.cluster"
ROLE = "heron.config.role"
ENVIRON = "heron.config.environ"

# Directories
HERON_HOME = "heron.directory.home"
HERON_CONF = "heron.directory.conf"
HERON_BIN = "heron.directory.bin"
HERON_LIB = "heron.directory.lib"

# Topology
TOPOLOGY_ID = "heron.topology.id"
TOPOLOGY_NAME = "heron.topology.name"
TOPOLOGY_DEFINITION_FILE = "heron.topology.definition.file"
TOPOLOGY_PACKAGE_FILE = "heron.topology.package.file"
TOPOLOGY_JAR_FILE = "heron.topology.jar.file"
TOPOLOGY_PACKAGE_TYPE = "heron.topology.package.type"

# Plugin identifiers
STATE_MANAGER_CLASS = "heron.class.state.manager"
LAUNCHER_CLASS = "heron.class.launcher"
PACKING_CLASS = "heron.class.packing.algorithm"
UPLOADER_CLASS = "heron.class.uploader"

# State manager
STATEMGR_ROOT_PATH = "heron.statemgr.root.path"
STATEMGR_INITIALIZE_TREE = "heron.statemgr.localfs.is.initialize.file.tree"

# Uploaders
LOCALFS_UPLOADER_DIRECTORY = "heron.uploader.localfs.file.system.directory"
SCP_COMMAND_OPTIONS = "heron.uploader.scp.command.options"
SCP_COMMAND_CONNECTION = "heron.uploader.scp.command.connection"
SSH_COMMAND_OPTIONS = "heron.uploader.ssh.command.options"
SSH_COMMAND_CONNECTION = "heron.uploader.ssh.command.connection"
SCP_DIR_PATH = "heron.uploader.scp.dir.path"
SCP_COMMAND_TIMEOUT = "heron.uploader.scp.command.timeout.sec"

# Launcher
LOCAL_LAUNCHER_WORKING_DIRECTORY = "heron.launcher.local.working.directory"

# Runtime (per-attempt, never persisted)
RUNTIME_TOPOLOGY_DEFINITION = "heron.runtime.topology.definition"
RUNTIME_STATE_MANAGER_ADAPTOR = "heron.runtime.scheduler.state.manager.adaptor"
RUNTIME_TOPOLOGY_PACKAGE_URI = "heron.runtime.topology.package.uri"
RUNTIME_LAUNCHER_INSTANCE = "heron.runtime.launcher.class.instance"
RUNTIME_PACKING_INSTANCE = "heron.runtime.packing.class.instance"

# Keys that must be present after the merge
REQUIRED_KEYS = (
    CLUSTER,
    ROLE,
    ENVIRON,
    HERON_HOME,
    HERON_CONF,
    TOPOLOGY_ID,
    TOPOLOGY_NAME,
    TOPOLOGY_PACKAGE_FILE,
    STATE_MANAGER_CLASS,
    LAUNCHER_CLASS,
    PACKING_CLASS,
    UPLOADER_CLASS,
)
