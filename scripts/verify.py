#!/usr/bin/python3
from pathlib import Path

import click
from ape import networks
from ape.cli import ConnectedProviderCommand, network_option

from deploychain.config import Config
from deploychain.exceptions import DeploymentError, VerificationFailure
from deploychain.manifest import read_manifest
from deploychain.options import (
    deployer_address_option,
    max_attempts_option,
    params_filepath_option,
    toolchain_option,
)
from deploychain.params import ContractParameters
from deploychain.retry import with_retry
from deploychain.utils import check_plugins
from scripts.deploy import get_toolchain, load_network_environment


@click.command(cls=ConnectedProviderCommand)
@network_option(required=True)
@params_filepath_option
@click.option(
    "--manifest-filepath",
    "-f",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    help="Manifest written by the deployment",
    required=True,
)
@click.option(
    "--contract-name",
    "-c",
    "contract_names",
    help="Contract to verify; defaults to every contract in the manifest",
    type=click.STRING,
    multiple=True,
)
@toolchain_option
@max_attempts_option
@deployer_address_option
def cli(
    network,
    params_filepath,
    manifest_filepath,
    contract_names,
    toolchain,
    max_attempts,
    deployer_address,
):
    """Verify contracts from a deployment manifest."""
    network_name = networks.provider.network.name
    load_network_environment(network_name)

    try:
        config = Config.from_yaml(params_filepath, network=network_name, max_attempts=max_attempts)
        check_plugins(toolchain=toolchain, verify=True)
        parameters = ContractParameters.from_config(config)
        manifest = read_manifest(manifest_filepath)
        selected_toolchain = get_toolchain(
            toolchain, config, autosign=False, deployer_address=deployer_address
        )
    except DeploymentError as e:
        raise click.ClickException(str(e))

    addresses = {name: result.deployed_address for name, result in manifest.items()}

    failures = list()
    for contract_name in contract_names or list(manifest):
        if contract_name not in manifest:
            raise click.BadParameter(
                f"Contract '{contract_name}' not found in manifest '{manifest_filepath}'",
                param_hint="--contract-name",
            )
        result = manifest[contract_name]
        try:
            spec = parameters.resolve(
                contract_name, addresses=addresses, deployer=selected_toolchain.deployer
            )
        except DeploymentError as e:
            raise click.ClickException(str(e))
        if spec.verify_args is None:
            click.echo(f"(i) {contract_name} is not verified; skipping.")
            continue

        try:
            with_retry(
                max_attempts=config.max_attempts,
                operation=lambda: selected_toolchain.verify(
                    result.contract, result.deployed_address, spec.verify_args
                ),
                failure=VerificationFailure,
                label=f"Verify {contract_name}",
            )
        except VerificationFailure as e:
            click.secho(f"(!) {e}", fg="red")
            failures.append(contract_name)
        else:
            click.secho(f"[verified] {result.contract.location}", fg="green")

    if failures:
        raise click.ClickException(f"Verification failed for {', '.join(failures)}.")


if __name__ == "__main__":
    cli()
