"""
CLI interface for heron_submit.

Submits one topology to a cluster:

    heron-submit -c local -r alice -e default \\
        -d ~/.heron -p conf/local \\
        -y word-count.tar.gz -f word-count.yaml -j word-count.jar

Exit codes: 0 when the topology was submitted, 1 on any failure,
including invalid arguments.
"""

import click

from heron_submit import __version__
from heron_submit.config import build_config, parse_config_overrides
from heron_submit.errors import FatalError
from heron_submit.plugins import load_plugins
from heron_submit.submitter import Submitter
from heron_submit.topology import load_topology
from heron_submit.utils import setup_logging


class SubmitterCommand(click.Command):
    """Command whose usage errors exit with 1 instead of click's 2."""

    def parse_args(self, ctx, args):
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as e:
            e.exit_code = 1
            raise


@click.command(
    "heron-submit",
    cls=SubmitterCommand,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("-c", "--cluster", required=True,
              help="Cluster name in which the topology needs to run on")
@click.option("-r", "--role", required=True,
              help="Role under which the topology needs to run")
@click.option("-e", "--environment", required=True,
              help="Environment under which the topology needs to run")
@click.option("-d", "--heron_home", required=True,
              help="Directory where heron is installed")
@click.option("-p", "--config_path", required=True,
              help="Path of the config files")
@click.option("-o", "--config_overrides", multiple=True, metavar="KEY=VALUE",
              help="Command line config overrides (repeatable)")
@click.option("-y", "--topology_package", required=True,
              help="tar ball containing user submitted jar/tar, defn and config")
@click.option("-f", "--topology_defn", required=True,
              help="File containing the topology definition (YAML or JSON)")
@click.option("-j", "--topology_jar", required=True,
              help="User heron topology jar")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logs")
@click.version_option(version=__version__, prog_name="heron-submit")
def main(
    cluster: str,
    role: str,
    environment: str,
    heron_home: str,
    config_path: str,
    config_overrides: tuple[str, ...],
    topology_package: str,
    topology_defn: str,
    topology_jar: str,
    verbose: bool,
):
    """
    Upload a topology package and launch the topology on a cluster.

    If the upload or the launch fails, both are rolled back.
    """
    log = setup_logging(verbose)

    try:
        topology = load_topology(topology_defn)
        config = build_config(
            heron_home=heron_home,
            config_path=config_path,
            cluster=cluster,
            role=role,
            environ=environment,
            topology_package=topology_package,
            topology_jar_file=topology_jar,
            topology_defn_file=topology_defn,
            topology=topology,
            overrides=parse_config_overrides(config_overrides),
        )
        log.debug("Static config loaded successfully")
        log.debug(config.dump())

        plugins = load_plugins(config)
    except FatalError as e:
        log.error(f"Failed to prepare submission from {topology_defn}: {e}")
        click.echo(f"✗ Submission aborted: {e}", err=True)
        raise SystemExit(1)

    outcome = Submitter(config, topology, plugins, logger=log).submit()

    if outcome.success:
        click.echo(f"✓ {topology.name} submitted ({outcome.package_uri})")
    else:
        stage = outcome.failed_stage.value if outcome.failed_stage else "unknown"
        click.echo(f"✗ {topology.name} failed during {stage}: {outcome.error}", err=True)

    raise SystemExit(outcome.exit_code)


if __name__ == "__main__":
    main()
