import os
import shutil
from typing import Dict

from ape import networks, project
from ape.contracts import ContractContainer

from deploychain.config import Config
from deploychain.constants import APE, ETHERSCAN_API_KEY_ENVVAR, FORGE, LOCAL_NETWORKS
from deploychain.exceptions import ConfigurationFailure


def is_local_network() -> bool:
    return networks.provider.network.name in LOCAL_NETWORKS


def validate_network(config: Config) -> None:
    """
    Checks that the chain_id of the params file matches the connected network.
    Local networks are exempt.
    """
    print("Validating network...")
    connected_chain_id = networks.provider.network.chain_id
    chain_mismatch = config.chain_id != connected_chain_id
    if chain_mismatch and not is_local_network():
        raise ConfigurationFailure(
            f"chain_id in params file ({config.chain_id}) does not match "
            f"chain_id of current network ({connected_chain_id})."
        )


def check_etherscan_plugin() -> None:
    """
    Checks that the ape-etherscan plugin is installed and that
    the appropriate API key environment variable is set.
    """
    if is_local_network():
        # unnecessary for local deployment
        return
    try:
        from ape_etherscan.utils import API_KEY_ENV_KEY_MAP
    except ImportError:
        raise ImportError("Please install the ape-etherscan plugin to use this script.")
    ecosystem_name = networks.provider.network.ecosystem.name
    explorer_envvar = API_KEY_ENV_KEY_MAP.get(ecosystem_name, ETHERSCAN_API_KEY_ENVVAR)
    if not os.environ.get(explorer_envvar):
        raise ConfigurationFailure(f"{explorer_envvar} is not set.")


def check_forge() -> None:
    """Checks that foundry's forge executable is on the PATH."""
    if shutil.which(FORGE) is None:
        raise ConfigurationFailure("Please install foundry (forge) to use the forge toolchain.")


def check_plugins(toolchain: str, verify: bool) -> None:
    print("Checking plugins...")
    if toolchain == FORGE:
        check_forge()
        if verify and not os.environ.get(ETHERSCAN_API_KEY_ENVVAR):
            raise ConfigurationFailure(f"{ETHERSCAN_API_KEY_ENVVAR} is not set.")
    elif toolchain == APE:
        if verify:
            check_etherscan_plugin()
    else:
        raise ConfigurationFailure(f"Unsupported toolchain '{toolchain}'.")


def _get_dependency_contract_container(contract: str) -> ContractContainer:
    for dependency_name, dependency_versions in project.dependencies.items():
        if len(dependency_versions) > 1:
            raise ValueError(f"Ambiguous {dependency_name} dependency for {contract}")
        try:
            dependency_api = list(dependency_versions.values())[0]
            contract_container = getattr(dependency_api, contract)
            return contract_container
        except AttributeError:
            continue
    raise ValueError(f"No contract found with name '{contract}'.")


def get_contract_container(contract: str) -> ContractContainer:
    try:
        contract_container = getattr(project, contract)
    except AttributeError:
        # not in root project; check dependencies
        contract_container = _get_dependency_contract_container(contract)

    return contract_container


def deployment_info(config: Config, toolchain: str) -> Dict[str, str]:
    return {
        "Deployment": config.name,
        "Toolchain": toolchain,
        "Ecosystem": networks.provider.network.ecosystem.name,
        "Network": config.network,
        "Chain ID": str(config.chain_id),
        "Max attempts": str(config.max_attempts),
        "Verify": str(config.verify),
        "Manifests": str(config.manifest_dir),
    }
