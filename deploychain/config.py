import typing
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, NamedTuple

import yaml

from deploychain.constants import DEFAULT_MAX_ATTEMPTS, MANIFESTS_DIR
from deploychain.exceptions import ConfigurationFailure


class Config(NamedTuple):
    """
    Resolved settings for a single deployment run.

    Built once from the params file and the selected network, then passed
    explicitly to whatever needs it; nothing below the command line reads
    the environment.
    """

    name: str
    network: str
    chain_id: int
    contracts: List[Any]
    constants: typing.Mapping[str, Any] = MappingProxyType({})
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    verify: bool = True
    manifest_dir: Path = MANIFESTS_DIR

    @classmethod
    def from_yaml(cls, filepath: Path, network: str, **overrides) -> "Config":
        try:
            with open(filepath, "r") as file:
                data = yaml.safe_load(file)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationFailure(f"Cannot load params file {filepath}: {e}") from e
        return cls.from_dict(data, network=network, **overrides)

    @classmethod
    def from_dict(cls, data: Dict, network: str, **overrides) -> "Config":
        if not isinstance(data, dict):
            raise ConfigurationFailure("Malformed params file.")

        deployment = data.get("deployment")
        if not deployment:
            raise ConfigurationFailure("deployment is not set in params file.")
        if not isinstance(deployment, dict):
            raise ConfigurationFailure("Malformed deployment section in params file.")

        chain_id = deployment.get("chain_id")
        if not chain_id:
            raise ConfigurationFailure("chain_id is not set in params file.")

        contracts = data.get("contracts")
        if not contracts:
            raise ConfigurationFailure("Params file missing 'contracts' field.")

        if not network:
            raise ConfigurationFailure("A network must be selected.")

        artifacts = data.get("artifacts") or {}
        settings = dict(
            name=deployment.get("name", "deployment"),
            network=network,
            chain_id=_to_int("chain_id", chain_id),
            contracts=list(contracts),
            constants=dict(data.get("constants") or {}),
            max_attempts=_to_int(
                "max_attempts", deployment.get("max_attempts", DEFAULT_MAX_ATTEMPTS)
            ),
            verify=bool(deployment.get("verify", True)),
            manifest_dir=Path(artifacts.get("dir", MANIFESTS_DIR)),
        )
        # command line values win over the params file
        settings.update({key: value for key, value in overrides.items() if value is not None})

        config = cls(**settings)
        if config.max_attempts < 1:
            raise ConfigurationFailure(
                f"max_attempts must be at least 1, got {config.max_attempts}."
            )
        return config


def _to_int(key: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationFailure(f"{key} must be an integer, got '{value}'.")
