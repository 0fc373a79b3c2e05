from pathlib import Path

import click
from eth_utils import to_checksum_address

from deploychain.constants import APE, MANIFESTS_DIR, SUPPORTED_TOOLCHAINS


def _checksum_deployer_address(ctx, param, value):
    if value is None:
        return None
    try:
        return to_checksum_address(value)
    except ValueError:
        raise click.BadParameter(f"{value} is not a valid ethereum address")


params_filepath_option = click.option(
    "--params-filepath",
    "-p",
    help="Path to the YAML deployment params file",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=True,
)

toolchain_option = click.option(
    "--toolchain",
    "-t",
    help="Toolchain used to deploy and verify contracts",
    type=click.Choice(SUPPORTED_TOOLCHAINS),
    default=APE,
    show_default=True,
)

max_attempts_option = click.option(
    "--max-attempts",
    "-m",
    help="Attempts per deploy/verify call; overrides the params file",
    type=click.IntRange(min=1),
    required=False,
)

verify_option = click.option(
    "--verify/--no-verify",
    help="Verify contracts on the block explorer; overrides the params file",
    default=None,
)

autosign_option = click.option(
    "--autosign",
    help="Sign transactions and skip confirmation prompts",
    is_flag=True,
    default=False,
)

save_partial_option = click.option(
    "--save-partial",
    help="Write the contracts deployed before a failure to a partial manifest",
    is_flag=True,
    default=False,
)

manifest_dir_option = click.option(
    "--manifest-dir",
    help="Directory holding deployment manifests",
    type=click.Path(file_okay=False, path_type=Path),
    default=MANIFESTS_DIR,
    show_default=True,
)

deployer_address_option = click.option(
    "--deployer-address",
    help="Address substituted for $deployer when deploying with forge",
    callback=_checksum_deployer_address,
    required=False,
)
