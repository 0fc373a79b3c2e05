#!/usr/bin/python3
import os
from pathlib import Path

import click
from ape import networks
from ape.cli import ConnectedProviderCommand, network_option
from ape.cli.choices import select_account
from dotenv import load_dotenv

from deploychain.config import Config
from deploychain.confirm import _continue
from deploychain.constants import (
    APE,
    ETHERSCAN_API_KEY_ENVVAR,
    FORGE_ACCOUNT_ENVVAR,
    RPC_URL_ENVVAR,
)
from deploychain.exceptions import DeploymentError
from deploychain.options import (
    autosign_option,
    deployer_address_option,
    max_attempts_option,
    params_filepath_option,
    save_partial_option,
    toolchain_option,
    verify_option,
)
from deploychain.orchestrator import deploy
from deploychain.params import ContractParameters
from deploychain.toolchain import ApeToolchain, ForgeToolchain, Toolchain
from deploychain.utils import check_plugins, deployment_info, validate_network


def load_network_environment(network_name: str) -> None:
    """Loads secrets for the selected network from .env.<network>, when present."""
    env_filepath = Path(f".env.{network_name}")
    if env_filepath.exists():
        load_dotenv(env_filepath)
        click.echo(f"Loaded environment from {env_filepath}")


def get_toolchain(name: str, config: Config, autosign: bool, deployer_address=None) -> Toolchain:
    if name == APE:
        account = select_account()
        if autosign:
            print("WARNING: Autosign is enabled. Transactions will be signed automatically.")
        account.set_autosign(autosign)
        return ApeToolchain(account=account)

    return ForgeToolchain(
        rpc_url=os.environ.get(RPC_URL_ENVVAR) or getattr(networks.provider, "uri", None),
        chain_id=config.chain_id,
        account=os.environ.get(FORGE_ACCOUNT_ENVVAR),
        etherscan_api_key=os.environ.get(ETHERSCAN_API_KEY_ENVVAR),
        deployer=deployer_address,
    )


@click.command(cls=ConnectedProviderCommand, name="deploy")
@network_option(required=True)
@params_filepath_option
@toolchain_option
@max_attempts_option
@verify_option
@autosign_option
@save_partial_option
@deployer_address_option
def cli(
    network,
    params_filepath,
    toolchain,
    max_attempts,
    verify,
    autosign,
    save_partial,
    deployer_address,
):
    """Deploy an ordered set of contracts and write a deployment manifest."""
    network_name = networks.provider.network.name
    load_network_environment(network_name)

    try:
        config = Config.from_yaml(
            params_filepath,
            network=network_name,
            max_attempts=max_attempts,
            verify=verify,
        )
        validate_network(config)
        check_plugins(toolchain=toolchain, verify=config.verify)
        parameters = ContractParameters.from_config(config)
        selected_toolchain = get_toolchain(toolchain, config, autosign, deployer_address)
        plans = parameters.plans(deployer=selected_toolchain.deployer)
    except DeploymentError as e:
        raise click.ClickException(str(e))

    info = deployment_info(config, toolchain)
    info["Params"] = str(params_filepath)
    info["Deployer"] = str(selected_toolchain.deployer)
    for label, value in info.items():
        click.echo(f"{label}: {value}")

    if not autosign:
        # Confirms the start of the deployment.
        _continue()

    try:
        manifest_filepath = deploy(
            config=config,
            toolchain=selected_toolchain,
            plans=plans,
            interactive=not autosign,
            save_partial=save_partial,
        )
    except DeploymentError as e:
        raise click.ClickException(str(e))

    click.secho(f"Deployment complete; manifest at {manifest_filepath}", fg="green")


if __name__ == "__main__":
    cli()
