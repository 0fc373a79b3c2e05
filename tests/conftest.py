import itertools
from typing import Any, Dict, List, Sequence

import pytest
from eth_utils import to_checksum_address

from deploychain.config import Config
from deploychain.models import ContractPlan, ContractRef, ContractSpec, DeployResult, VerifyResult
from deploychain.toolchain import Toolchain

DEPLOYER = "0x4D977d9aEceC3776DD73F2f9080C9AF3BC31f505"
NETWORK = "sepolia"
CHAIN_ID = 11155111


class FakeToolchain(Toolchain):
    """
    Records every call in ``events``; deploy/verify of a contract fails as many
    times as configured for its name before succeeding.
    """

    def __init__(
        self,
        deploy_failures: Dict[str, int] = None,
        verify_failures: Dict[str, int] = None,
        events: List = None,
    ):
        self.deployer = DEPLOYER
        self.deploy_failures = dict(deploy_failures or {})
        self.verify_failures = dict(verify_failures or {})
        self.events = events if events is not None else list()
        self._addresses = itertools.count(1)

    def deploy(self, contract: ContractRef, args: Sequence[Any]) -> DeployResult:
        self.events.append(("deploy", contract.name, tuple(args)))
        if self.deploy_failures.get(contract.name, 0) > 0:
            self.deploy_failures[contract.name] -= 1
            raise RuntimeError(f"nonce too low while deploying {contract.name}")

        index = next(self._addresses)
        address = to_checksum_address(f"0x{index:040x}")
        return DeployResult(
            contract=contract,
            deployed_address=address,
            constructor_args=tuple(args),
            metadata={"tx_hash": f"0x{index:064x}", "deployer": self.deployer},
        )

    def verify(self, contract: ContractRef, address: str, args: Sequence[Any]) -> VerifyResult:
        self.events.append(("verify", contract.name, address, tuple(args)))
        if self.verify_failures.get(contract.name, 0) > 0:
            self.verify_failures[contract.name] -= 1
            raise RuntimeError(f"explorer rate limit while verifying {contract.name}")
        return VerifyResult(contract=contract, address=address)

    def calls(self, kind: str) -> List:
        return [event for event in self.events if event[0] == kind]


@pytest.fixture
def toolchain():
    return FakeToolchain()


@pytest.fixture
def config(tmp_path):
    return Config(
        name="test",
        network=NETWORK,
        chain_id=CHAIN_ID,
        contracts=["A", "B", "C"],
        manifest_dir=tmp_path / "deployments",
    )


def make_plan(name: str, depends_on=(), literals=(), verify_args=None, events=None) -> ContractPlan:
    """
    A plan whose constructor arguments are its literals followed by the addresses
    of its dependencies; builds are recorded in ``events`` when given.
    """

    def build(addresses: Dict[str, str]) -> ContractSpec:
        if events is not None:
            events.append(("build", name))
        args = tuple(literals) + tuple(addresses[dependency] for dependency in depends_on)
        return ContractSpec(
            name=name,
            contract=ContractRef(source=f"src/{name}.sol", name=name),
            constructor_args=args,
            verify_args=verify_args,
        )

    return ContractPlan(name=name, build=build, depends_on=tuple(depends_on))


@pytest.fixture
def abc_plans():
    return [
        make_plan("A", literals=("cre8ors", 8888), verify_args=("cre8ors", 8888)),
        make_plan("B", depends_on=["A"], verify_args=()),
        make_plan("C", depends_on=["A", "B"]),
    ]
