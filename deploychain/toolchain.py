import json
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List, Optional, Sequence

from ape import networks
from ape.api import AccountAPI
from eth_abi import encode
from eth_abi.grammar import ABIType, TupleType, parse
from eth_utils import to_bytes, to_checksum_address
from eth_utils.abi import collapse_if_tuple

from deploychain.constants import FORGE, FORGE_ARTIFACTS_DIR
from deploychain.exceptions import ConfigurationFailure
from deploychain.models import Address, ContractRef, DeployResult, VerifyResult
from deploychain.utils import get_contract_container

COMPOSITE_DELIMITERS = {"(": ")", "[": "]"}


class Toolchain(ABC):
    """
    The external compile/deploy/verify capability.

    Calls are blocking and may fail for transient reasons; callers retry them.
    """

    # address substituted for the $deployer variable, when known
    deployer: Optional[Address] = None

    @abstractmethod
    def deploy(self, contract: ContractRef, args: Sequence[Any]) -> DeployResult:
        raise NotImplementedError

    @abstractmethod
    def verify(self, contract: ContractRef, address: Address, args: Sequence[Any]) -> VerifyResult:
        raise NotImplementedError


class ApeToolchain(Toolchain):
    """Deploys with an ape account and verifies through the network's explorer plugin."""

    def __init__(self, account: AccountAPI):
        self.account = account
        self.deployer = account.address

    def deploy(self, contract: ContractRef, args: Sequence[Any]) -> DeployResult:
        container = get_contract_container(contract.name)
        instance = self.account.deploy(
            container, *_container_args(contract, container, args), publish=False
        )
        receipt = instance.receipt
        return DeployResult(
            contract=contract,
            deployed_address=to_checksum_address(instance.address),
            constructor_args=tuple(args),
            metadata={
                "tx_hash": receipt.txn_hash,
                "block_number": receipt.block_number,
                "deployer": receipt.transaction.sender,
            },
        )

    def verify(self, contract: ContractRef, address: Address, args: Sequence[Any]) -> VerifyResult:
        # ape-etherscan reads the constructor arguments from the creation transaction;
        # encoding them here rejects verify args that do not fit the constructor ABI.
        container = get_contract_container(contract.name)
        container.constructor.encode_input(*_container_args(contract, container, args))

        explorer = networks.provider.network.explorer
        if explorer is None:
            raise ConfigurationFailure(
                f"No explorer plugin available for network {networks.provider.network.name}."
            )
        explorer.publish_contract(address)
        return VerifyResult(contract=contract, address=address)


class ForgeToolchain(Toolchain):
    """Shells out to foundry: `forge create` to deploy, `forge verify-contract` to verify."""

    def __init__(
        self,
        rpc_url: str,
        chain_id: int,
        account: Optional[str] = None,
        etherscan_api_key: Optional[str] = None,
        project_root: Path = Path("."),
        deployer: Optional[Address] = None,
        executable: str = FORGE,
    ):
        if not rpc_url:
            raise ConfigurationFailure("An RPC URL is required for the forge toolchain.")
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self.account = account
        self.etherscan_api_key = etherscan_api_key
        self.project_root = Path(project_root)
        self.deployer = deployer
        self.executable = executable

    def deploy(self, contract: ContractRef, args: Sequence[Any]) -> DeployResult:
        command = [
            self.executable,
            "create",
            contract.location,
            "--rpc-url",
            self.rpc_url,
            "--broadcast",
            "--json",
        ]
        if self.account:
            command.extend(["--account", self.account])
        if args:
            # variadic, must come last
            command.extend(["--constructor-args", *(_format_cli_arg(arg) for arg in args)])

        output = self._run(command)
        data = _parse_json_output(output)
        return DeployResult(
            contract=contract,
            deployed_address=to_checksum_address(data["deployedTo"]),
            constructor_args=tuple(args),
            metadata={
                "tx_hash": data.get("transactionHash"),
                "deployer": data.get("deployer"),
            },
        )

    def verify(self, contract: ContractRef, address: Address, args: Sequence[Any]) -> VerifyResult:
        if not self.etherscan_api_key:
            raise ConfigurationFailure("An explorer API key is required to verify contracts.")
        command = [
            self.executable,
            "verify-contract",
            address,
            contract.location,
            "--chain",
            str(self.chain_id),
            "--etherscan-api-key",
            self.etherscan_api_key,
            "--watch",
        ]
        if args:
            command.extend(["--constructor-args", self.encode_constructor_args(contract, args)])

        output = self._run(command)
        return VerifyResult(contract=contract, address=address, details=output.strip() or None)

    def artifact_filepath(self, contract: ContractRef) -> Path:
        if contract.source is None:
            raise ConfigurationFailure(
                f"Contract location '{contract}' must name its source file for forge."
            )
        source_filename = Path(contract.source).name
        return self.project_root / FORGE_ARTIFACTS_DIR / source_filename / f"{contract.name}.json"

    def encode_constructor_args(self, contract: ContractRef, args: Sequence[Any]) -> str:
        """ABI-encodes constructor arguments against the compiled artifact."""
        filepath = self.artifact_filepath(contract)
        with open(filepath, "r") as file:
            abi = json.load(file)["abi"]

        constructors = [entry for entry in abi if entry["type"] == "constructor"]
        inputs = constructors[0]["inputs"] if constructors else []
        types = [collapse_if_tuple(abi_input) for abi_input in inputs]
        return "0x" + encode(types, coerce_args(contract, types, args)).hex()

    def _run(self, command: List[str]) -> str:
        process = subprocess.run(
            command,
            cwd=self.project_root,
            capture_output=True,
            text=True,
            check=False,
        )
        if process.returncode != 0:
            error = (process.stderr or process.stdout).strip()
            raise RuntimeError(
                f"{command[0]} {command[1]} exited with {process.returncode}: {error}"
            )
        return process.stdout


def _parse_json_output(output: str) -> dict:
    # forge may print compiler progress before the JSON document
    for line in reversed(output.strip().splitlines()):
        line = line.strip()
        if line.startswith("{"):
            return json.loads(line)
    raise ValueError(f"Unexpected forge output: {output!r}")


def _format_cli_arg(value: Any) -> str:
    """Formats a value the way forge parses command line constructor arguments."""
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_format_cli_arg(v) for v in value) + "]"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value)


def _coerce(abi_type: ABIType, value: Any) -> Any:
    """Converts params-file values (often strings) into what eth-abi expects for abi_type."""
    if isinstance(value, str) and (abi_type.is_array or isinstance(abi_type, TupleType)):
        value = _split_composite(value)

    if abi_type.is_array:
        return [_coerce(abi_type.item_type, v) for v in value]

    if isinstance(abi_type, TupleType):
        if len(value) != len(abi_type.components):
            raise ConfigurationFailure(
                f"Expected {len(abi_type.components)} values for {abi_type.to_type_str()}, "
                f"got {len(value)}."
            )
        return tuple(_coerce(c, v) for c, v in zip(abi_type.components, value))

    base = abi_type.base
    if base in ("uint", "int") and isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    if base == "bool" and isinstance(value, str):
        return value.strip().lower() == "true"
    if base == "bytes" and isinstance(value, str):
        return to_bytes(hexstr=value)
    if base == "address":
        return to_checksum_address(value)
    return value


def coerce_args(contract: ContractRef, types: Sequence[str], args: Sequence[Any]) -> List[Any]:
    """Converts constructor arguments to the values expected for their ABI types."""
    if len(types) != len(args):
        raise ConfigurationFailure(
            f"Constructor parameters length mismatch - "
            f"{contract.name} ABI requires {len(types)}, Got {len(args)}."
        )
    return [_coerce(parse(abi_type), arg) for abi_type, arg in zip(types, args)]


def _container_args(contract: ContractRef, container, args: Sequence[Any]) -> List[Any]:
    types = [abi_input.canonical_type for abi_input in container.constructor.abi.inputs]
    return coerce_args(contract, types, args)


def _split_composite(value: str) -> List[str]:
    """Splits a tuple or array literal such as "(1,0xabc,[2,3])" into its top-level items."""
    text = value.strip()
    if len(text) < 2 or text[0] not in COMPOSITE_DELIMITERS:
        raise ConfigurationFailure(f"Malformed tuple or array value '{value}'.")
    if text[-1] != COMPOSITE_DELIMITERS[text[0]]:
        raise ConfigurationFailure(f"Malformed tuple or array value '{value}'.")

    items, current, depth = list(), "", 0
    for char in text[1:-1]:
        if char in COMPOSITE_DELIMITERS:
            depth += 1
        elif char in COMPOSITE_DELIMITERS.values():
            depth -= 1
        if char == "," and depth == 0:
            items.append(current.strip())
            current = ""
        else:
            current += char
    if items or current.strip():
        items.append(current.strip())
    return items
