import typing
from abc import ABC, abstractmethod
from collections import OrderedDict
from functools import partial
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Tuple

from deploychain.config import Config
from deploychain.exceptions import ConfigurationFailure
from deploychain.models import Address, ContractPlan, ContractRef, ContractSpec

CONTRACT_LOCATION_KEY = "location"
CONTRACT_CONSTRUCTOR_PARAMETER_KEY = "constructor"
CONTRACT_VERIFY_PARAMETER_KEY = "verify"
CONTRACT_DEPENDS_ON_KEY = "depends_on"
CONTRACT_NOTES_KEY = "notes"

KNOWN_CONTRACT_KEYS = {
    CONTRACT_LOCATION_KEY,
    CONTRACT_CONSTRUCTOR_PARAMETER_KEY,
    CONTRACT_VERIFY_PARAMETER_KEY,
    CONTRACT_DEPENDS_ON_KEY,
    CONTRACT_NOTES_KEY,
}


class VariableContext:
    def __init__(
        self,
        contract_names: List[str],
        contract_name: str,
        constants: typing.Dict[str, Any] = None,
    ):
        # only contracts declared before contract_name can be referenced
        self.contract_names = contract_names or list()
        self.contract_name = contract_name
        self.constants = constants or dict()


class Resolution(NamedTuple):
    """Values known at the time a contract is about to be deployed."""

    addresses: Dict[str, Address]
    deployer: Optional[Address] = None


# Variables


class Variable(ABC):
    VARIABLE_PREFIX = "$"

    @abstractmethod
    def resolve(self, resolution: Resolution) -> Any:
        raise NotImplementedError

    @classmethod
    def is_variable(cls, param: Any) -> bool:
        """Returns True if the param is a variable."""
        result = isinstance(param, str) and param.startswith(cls.VARIABLE_PREFIX)
        return result


class DeployerAccount(Variable):
    DEPLOYER_INDICATOR = "deployer"

    @classmethod
    def is_deployer(cls, value: str) -> bool:
        """Returns True if the variable is a special deployer variable."""
        return value == cls.DEPLOYER_INDICATOR

    def resolve(self, resolution: Resolution) -> Any:
        if resolution.deployer is None:
            raise ConfigurationFailure("$deployer is used but the deployer address is unknown.")
        return resolution.deployer


class Constant(Variable):
    def __init__(self, constant_name: str, context: VariableContext):
        try:
            self.constant_value = context.constants[constant_name]
        except KeyError:
            raise ConfigurationFailure(f"Constant '{constant_name}' not found in params file.")

    @classmethod
    def is_constant(cls, value: str) -> bool:
        """Returns True if the variable is a deployment constant."""
        return value.isupper()

    def resolve(self, resolution: Resolution) -> Any:
        return self.constant_value


class ContractName(Variable):
    def __init__(self, contract_name: str, context: VariableContext):
        if contract_name not in context.contract_names:
            raise ConfigurationFailure(
                f"Contract name {contract_name} not found among the contracts "
                f"deployed before {context.contract_name}"
            )
        self.contract_name = contract_name

    def resolve(self, resolution: Resolution) -> Any:
        """Resolves a contract address."""
        try:
            return resolution.addresses[self.contract_name]
        except KeyError:
            raise ConfigurationFailure(f"Address of {self.contract_name} is not available.")


def _resolve_param(value: Any, resolution: Resolution) -> Any:
    """Resolves a single parameter value or a list of parameter values."""
    if isinstance(value, list):
        return [_resolve_param(v, resolution) for v in value]

    if isinstance(value, Variable):
        return value.resolve(resolution)

    return value  # literally a value


def _resolve_params(parameters: OrderedDict, resolution: Resolution) -> Tuple[Any, ...]:
    return tuple(_resolve_param(value, resolution) for value in parameters.values())


def _variable_from_value(variable: str, context: VariableContext) -> Variable:
    variable = variable[len(Variable.VARIABLE_PREFIX) :]
    if DeployerAccount.is_deployer(variable):
        return DeployerAccount()
    elif variable in context.contract_names:
        # an earlier contract named like a constant, e.g. $NFT
        return ContractName(variable, context)
    elif Constant.is_constant(variable):
        return Constant(variable, context)
    else:
        return ContractName(variable, context)


def _process_raw_value(value: Any, variable_context: VariableContext) -> Any:
    if isinstance(value, list):
        return [_process_raw_value(v, variable_context) for v in value]

    if Variable.is_variable(value):
        value = _variable_from_value(value, variable_context)

    return value


def _process_raw_values(values: Any, variable_context: VariableContext) -> OrderedDict:
    if isinstance(values, list):
        # positional parameters
        values = OrderedDict((str(position), value) for position, value in enumerate(values))
    if not isinstance(values, dict):
        raise ConfigurationFailure(
            f"Malformed parameters for {variable_context.contract_name}; "
            f"expected a mapping or a list."
        )

    processed_parameters = OrderedDict()
    for name, value in values.items():
        processed_parameters[name] = _process_raw_value(value, variable_context)

    return processed_parameters


def _variables(parameters: OrderedDict) -> Iterator[Variable]:
    """Yields the variables in the parameters, nested lists included, in order."""

    def _walk(value):
        if isinstance(value, list):
            for v in value:
                yield from _walk(v)
        elif isinstance(value, Variable):
            yield value

    for parameter in parameters.values():
        yield from _walk(parameter)


def _referenced_contracts(parameters: OrderedDict) -> List[str]:
    """Returns the contracts whose addresses appear in the parameters, in order."""
    referenced = list()
    for variable in _variables(parameters):
        if isinstance(variable, ContractName) and variable.contract_name not in referenced:
            referenced.append(variable.contract_name)
    return referenced


def _split_contract_info(contract_info: Any) -> Tuple[str, Dict]:
    if isinstance(contract_info, str):
        return contract_info, dict()
    if isinstance(contract_info, dict) and len(contract_info) == 1:
        contract_name = list(contract_info.keys())[0]  # only one entry
        contract_data = contract_info[contract_name] or dict()
        if not isinstance(contract_data, dict):
            raise ConfigurationFailure(f"Malformed parameters for {contract_name}.")
        unknown_keys = set(contract_data) - KNOWN_CONTRACT_KEYS
        if unknown_keys:
            raise ConfigurationFailure(
                f"Unknown keys for {contract_name}: {', '.join(sorted(unknown_keys))}"
            )
        return contract_name, contract_data
    raise ConfigurationFailure("Malformed contracts section in params file.")


class ContractParameters:
    """Deployment parameters for an ordered set of contracts."""

    class Entry(NamedTuple):
        contract: ContractRef
        constructor: OrderedDict
        # None: not verified, True: verified with the constructor parameters
        verify: typing.Union[None, bool, OrderedDict]
        depends_on: Tuple[str, ...]
        notes: Tuple[str, ...]

    def __init__(self, entries: "OrderedDict[str, ContractParameters.Entry]"):
        self.entries = entries

    @classmethod
    def from_config(cls, config: Config) -> "ContractParameters":
        """Processes the contracts section of the params file."""
        print("Processing contract parameters...")
        entries = OrderedDict()
        for contract_info in config.contracts:
            contract_name, contract_data = _split_contract_info(contract_info)
            if contract_name in entries:
                raise ConfigurationFailure(f"{contract_name} is listed more than once.")

            context = VariableContext(
                contract_names=list(entries),
                contract_name=contract_name,
                constants=config.constants,
            )
            entries[contract_name] = cls._process_entry(contract_name, contract_data, context)

        return cls(entries=entries)

    @classmethod
    def _process_entry(
        cls, contract_name: str, contract_data: Dict, context: VariableContext
    ) -> "ContractParameters.Entry":
        location = contract_data.get(CONTRACT_LOCATION_KEY, contract_name)
        constructor = _process_raw_values(
            contract_data.get(CONTRACT_CONSTRUCTOR_PARAMETER_KEY) or OrderedDict(), context
        )

        raw_verify = contract_data.get(CONTRACT_VERIFY_PARAMETER_KEY, True)
        if raw_verify is True:
            verify = True
        elif raw_verify is False or raw_verify is None:
            verify = None
        else:
            verify = _process_raw_values(raw_verify, context)

        depends_on = list()
        for dependency in contract_data.get(CONTRACT_DEPENDS_ON_KEY) or []:
            if dependency not in context.contract_names:
                raise ConfigurationFailure(
                    f"{contract_name} depends on {dependency}, which is not listed before it."
                )
            depends_on.append(dependency)
        referenced = _referenced_contracts(constructor)
        if isinstance(verify, OrderedDict):
            referenced.extend(_referenced_contracts(verify))
        for dependency in referenced:
            if dependency not in depends_on:
                depends_on.append(dependency)

        notes = contract_data.get(CONTRACT_NOTES_KEY) or []
        if isinstance(notes, str):
            notes = [notes]

        return cls.Entry(
            contract=ContractRef.from_location(location),
            constructor=constructor,
            verify=verify,
            depends_on=tuple(depends_on),
            notes=tuple(notes),
        )

    def resolve(
        self,
        contract_name: str,
        addresses: Dict[str, Address],
        deployer: Optional[Address] = None,
    ) -> ContractSpec:
        """Resolves the parameters of a single contract into a ContractSpec."""
        try:
            entry = self.entries[contract_name]
        except KeyError:
            raise ConfigurationFailure(f"Unexpected contract: {contract_name}")

        resolution = Resolution(addresses=addresses, deployer=deployer)
        constructor_args = _resolve_params(entry.constructor, resolution)
        if entry.verify is None:
            verify_args = None
        elif entry.verify is True:
            verify_args = constructor_args
        else:
            verify_args = _resolve_params(entry.verify, resolution)

        return ContractSpec(
            name=contract_name,
            contract=entry.contract,
            constructor_args=constructor_args,
            verify_args=verify_args,
            notes=entry.notes,
        )

    def uses_deployer(self) -> List[str]:
        """Returns the contracts whose parameters reference $deployer."""
        contract_names = list()
        for contract_name, entry in self.entries.items():
            parameters = [entry.constructor]
            if isinstance(entry.verify, OrderedDict):
                parameters.append(entry.verify)
            if any(
                isinstance(variable, DeployerAccount)
                for values in parameters
                for variable in _variables(values)
            ):
                contract_names.append(contract_name)
        return contract_names

    def plans(self, deployer: Optional[Address] = None) -> List[ContractPlan]:
        """
        Returns a deployment plan per contract, in params file order.
        Fails before anything is deployed when $deployer is used but unknown.
        """
        if deployer is None:
            contract_names = self.uses_deployer()
            if contract_names:
                raise ConfigurationFailure(
                    f"$deployer is used by {', '.join(contract_names)} "
                    f"but the deployer address is unknown."
                )
        return [
            ContractPlan(
                name=contract_name,
                build=partial(self.resolve, contract_name, deployer=deployer),
                depends_on=entry.depends_on,
            )
            for contract_name, entry in self.entries.items()
        ]
