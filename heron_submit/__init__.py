"""
heron_submit - Topology submission client

Assembles cluster configuration, resolves pluggable collaborators and
submits a topology package to a cluster, rolling back on failure.
"""

__version__ = "0.1.0"
__author__ = "Heron Tooling Team"


__all__ = ["Config", "Submitter", "SubmissionOutcome", "build_config", "load_topology"]

from .config import Config, build_config
from .submitter import Submitter, SubmissionOutcome
from .topology import load_topology
