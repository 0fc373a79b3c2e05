import typing
from collections import OrderedDict
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, NamedTuple, Optional, Tuple

from deploychain.exceptions import ConfigurationFailure

ContractName = str
Address = str

LOCATION_DELIMITER = ":"


class ContractRef(NamedTuple):
    """Compilation unit plus contract name, e.g. src/Cre8ors.sol:Cre8ors."""

    source: Optional[str]
    name: str

    @classmethod
    def from_location(cls, location: str) -> "ContractRef":
        if not location:
            raise ConfigurationFailure("Contract location cannot be empty.")
        source, delimiter, name = location.rpartition(LOCATION_DELIMITER)
        if not delimiter:
            return cls(source=None, name=location)
        if not source or not name:
            raise ConfigurationFailure(f"Malformed contract location '{location}'.")
        return cls(source=source, name=name)

    @property
    def location(self) -> str:
        if self.source is None:
            return self.name
        return f"{self.source}{LOCATION_DELIMITER}{self.name}"

    def __str__(self) -> str:
        return self.location


class ContractSpec(NamedTuple):
    """
    A single contract deployment with fully resolved arguments.

    Deploy and verify arguments are independent values: the deploy path and the
    block explorer may need different encodings of the same tuple.
    ``verify_args`` of None means the contract is not verified.
    """

    name: ContractName
    contract: ContractRef
    constructor_args: Tuple[Any, ...] = ()
    verify_args: Optional[Tuple[Any, ...]] = None
    notes: Tuple[str, ...] = ()


class DeployResult(NamedTuple):
    contract: ContractRef
    deployed_address: Address
    constructor_args: Tuple[Any, ...] = ()
    metadata: typing.Mapping[str, Any] = MappingProxyType({})


class VerifyResult(NamedTuple):
    contract: ContractRef
    address: Address
    details: Optional[str] = None


class ContractPlan(NamedTuple):
    """
    A deployment that is yet to be specified.

    ``build`` receives the deployed addresses of ``depends_on`` (by logical name)
    and returns the ContractSpec; it is only called once all of them are deployed.
    """

    name: ContractName
    build: Callable[[Dict[ContractName, Address]], ContractSpec]
    depends_on: Tuple[ContractName, ...] = ()


class DeploymentManifest:
    """Ordered record of the contracts deployed during a single run."""

    def __init__(self):
        self._results: "OrderedDict[ContractName, DeployResult]" = OrderedDict()

    def record(self, name: ContractName, result: DeployResult) -> None:
        if name in self._results:
            raise ConfigurationFailure(f"{name} was already deployed during this run.")
        self._results[name] = result

    def address_of(self, name: ContractName) -> Address:
        try:
            return self._results[name].deployed_address
        except KeyError:
            raise ConfigurationFailure(f"No deployed address for {name} in manifest.")

    def get(self, name: ContractName) -> Optional[DeployResult]:
        return self._results.get(name)

    def items(self):
        return self._results.items()

    def __getitem__(self, name: ContractName) -> DeployResult:
        return self._results[name]

    def __contains__(self, name: object) -> bool:
        return name in self._results

    def __iter__(self) -> Iterator[ContractName]:
        return iter(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def __repr__(self) -> str:
        return f"DeploymentManifest({list(self._results)})"

    def to_dict(self) -> Dict[str, Any]:
        data = OrderedDict()
        for name, result in self._results.items():
            data[name] = {
                "location": result.contract.location,
                "address": result.deployed_address,
                "constructor_args": [_to_json_value(arg) for arg in result.constructor_args],
                **{key: _to_json_value(value) for key, value in result.metadata.items()},
            }
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeploymentManifest":
        manifest = cls()
        for name, entry in data.items():
            entry = dict(entry)
            result = DeployResult(
                contract=ContractRef.from_location(entry.pop("location")),
                deployed_address=entry.pop("address"),
                constructor_args=tuple(entry.pop("constructor_args", ())),
                metadata=entry,
            )
            manifest.record(name, result)
        return manifest


def _to_json_value(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [_to_json_value(v) for v in value]
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value
