#!/usr/bin/python3
from pathlib import Path
from typing import List, Optional, Tuple

import click

from deploychain.exceptions import PersistenceFailure
from deploychain.manifest import list_manifests, read_manifest
from deploychain.models import DeploymentManifest
from deploychain.options import manifest_dir_option


def _get_manifests(
    directory: Path, network: Optional[str] = None
) -> List[Tuple[Path, DeploymentManifest]]:
    """Reads every manifest in the directory, optionally only those for a network."""
    manifests = list()
    for filepath in list_manifests(directory=directory, network=network):
        manifests.append((filepath, read_manifest(filepath)))
    return manifests


def _display_manifests(manifests: List[Tuple[Path, DeploymentManifest]]) -> None:
    for filepath, manifest in manifests:
        date, network, _ = filepath.name.split(".", 2)
        click.secho(f"\n{date} {network.capitalize()}", fg="green")
        for index, (name, result) in enumerate(manifest.items(), start=1):
            click.secho(f"    {index}. {name} {result.deployed_address}", fg="cyan")


@click.command(name="list-manifests")
@manifest_dir_option
@click.option("--network", "-n", help="Only list manifests for this network", required=False)
def cli(manifest_dir, network):
    """List the contracts in every deployment manifest. Optionally filter by network."""
    try:
        manifests = _get_manifests(manifest_dir, network)
    except PersistenceFailure as e:
        raise click.ClickException(str(e))
    if not manifests:
        click.echo(f"No manifests found in {manifest_dir}.")
        return
    _display_manifests(manifests)


if __name__ == "__main__":
    cli()
