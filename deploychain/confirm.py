import sys

from deploychain.constants import ZERO_ADDRESS
from deploychain.models import ContractSpec


def _abort() -> None:
    print("Aborting deployment!")
    sys.exit(-1)


def _confirm_deployment(contract_name: str) -> None:
    """Asks the user to confirm the deployment of a single contract."""
    answer = input(f"Deploy {contract_name} Y/N? ")
    if answer.lower().strip() == "n":
        _abort()


def _continue() -> None:
    """Asks the user to continue."""
    answer = input("Continue Y/N? ")
    if answer.lower().strip() == "n":
        _abort()


def _confirm_zero_address() -> None:
    answer = input("Zero Address detected for deployment parameter; Continue? Y/N? ")
    if answer.lower().strip() == "n":
        _abort()


def _confirm_resolution(spec: ContractSpec) -> None:
    """Asks the user to confirm the resolved constructor arguments for a single contract."""
    if len(spec.constructor_args) == 0:
        print(f"\n(i) No constructor parameters for {spec.name}")
        _confirm_deployment(spec.name)
        return

    print(f"\nConstructor parameters for {spec.name}")
    contains_zero_address = False
    for position, resolved_value in enumerate(spec.constructor_args):
        print(f"\t[{position}] {resolved_value}")
        if not contains_zero_address:
            contains_zero_address = resolved_value == ZERO_ADDRESS
    if spec.verify_args is not None and spec.verify_args != spec.constructor_args:
        print(f"Verification parameters for {spec.name}")
        for position, resolved_value in enumerate(spec.verify_args):
            print(f"\t[{position}] {resolved_value}")
    _confirm_deployment(spec.name)
    if contains_zero_address:
        _confirm_zero_address()
