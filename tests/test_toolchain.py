import json
import subprocess
from types import SimpleNamespace

import pytest
from eth_abi import encode
from eth_utils import to_checksum_address

from deploychain import toolchain as toolchain_module
from deploychain.constants import ZERO_ADDRESS
from deploychain.exceptions import ConfigurationFailure
from deploychain.models import ContractRef
from deploychain.toolchain import (
    ApeToolchain,
    ForgeToolchain,
    _format_cli_arg,
    _split_composite,
)
from tests.conftest import CHAIN_ID, DEPLOYER

RPC_URL = "http://127.0.0.1:8545"
DEPLOYED_TO = "0xe05ae2ff6d24cfe14d62c72978f4e1ecf583e956"
CRE8ORS = ContractRef.from_location("src/Cre8ors.sol:Cre8ors")
MERKLE_ROOT = "0x" + "00" * 32

CONSTRUCTOR_ABI = [
    {
        "type": "constructor",
        "inputs": [
            {"name": "_contractName", "type": "string"},
            {"name": "_editionSize", "type": "uint64"},
            {"name": "_initialOwner", "type": "address"},
            {
                "name": "_salesConfig",
                "type": "tuple",
                "components": [
                    {"name": "publicSalePrice", "type": "uint104"},
                    {"name": "erc20PaymentToken", "type": "address"},
                    {"name": "presaleMerkleRoot", "type": "bytes32"},
                ],
            },
        ],
    },
    {"type": "function", "name": "owner", "inputs": [], "outputs": []},
]


class RecordingRun:
    def __init__(self, returncode=0, stdout="", stderr=""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.commands = list()

    def __call__(self, command, **kwargs):
        self.commands.append((command, kwargs))
        return subprocess.CompletedProcess(command, self.returncode, self.stdout, self.stderr)


@pytest.fixture
def project_root(tmp_path):
    artifact_dir = tmp_path / "out" / "Cre8ors.sol"
    artifact_dir.mkdir(parents=True)
    (artifact_dir / "Cre8ors.json").write_text(json.dumps({"abi": CONSTRUCTOR_ABI}))
    return tmp_path


@pytest.fixture
def forge(project_root):
    return ForgeToolchain(
        rpc_url=RPC_URL,
        chain_id=CHAIN_ID,
        account="deployer",
        etherscan_api_key="ABC123",
        project_root=project_root,
        deployer=DEPLOYER,
    )


def _patch_run(monkeypatch, **kwargs):
    run = RecordingRun(**kwargs)
    monkeypatch.setattr(toolchain_module.subprocess, "run", run)
    return run


def test_deploy(forge, project_root, monkeypatch):
    output = {"deployer": DEPLOYER, "deployedTo": DEPLOYED_TO, "transactionHash": "0xabcdef"}
    run = _patch_run(monkeypatch, stdout="Compiling 3 files\n" + json.dumps(output) + "\n")

    result = forge.deploy(CRE8ORS, ("cre8ors", "8888", ["1", ZERO_ADDRESS]))

    (command, kwargs), = run.commands
    assert command == [
        "forge",
        "create",
        "src/Cre8ors.sol:Cre8ors",
        "--rpc-url",
        RPC_URL,
        "--broadcast",
        "--json",
        "--account",
        "deployer",
        "--constructor-args",
        "cre8ors",
        "8888",
        f"[1,{ZERO_ADDRESS}]",
    ]
    assert kwargs["cwd"] == project_root
    assert result.deployed_address == to_checksum_address(DEPLOYED_TO)
    assert result.constructor_args == ("cre8ors", "8888", ["1", ZERO_ADDRESS])
    assert result.metadata == {"tx_hash": "0xabcdef", "deployer": DEPLOYER}


def test_deploy_without_arguments(forge, monkeypatch):
    run = _patch_run(monkeypatch, stdout=json.dumps({"deployedTo": DEPLOYED_TO}))
    forge.deploy(ContractRef.from_location("src/utils/Lockup.sol:Lockup"), ())

    (command, _), = run.commands
    assert "--constructor-args" not in command


def test_failed_command_raises(forge, monkeypatch):
    _patch_run(monkeypatch, returncode=1, stderr="Error: nonce too low\n")
    with pytest.raises(RuntimeError, match="forge create exited with 1: Error: nonce too low"):
        forge.deploy(CRE8ORS, ())


def test_unexpected_output(forge, monkeypatch):
    _patch_run(monkeypatch, stdout="nothing to see here")
    with pytest.raises(ValueError, match="Unexpected forge output"):
        forge.deploy(CRE8ORS, ())


def test_rpc_url_is_required():
    with pytest.raises(ConfigurationFailure):
        ForgeToolchain(rpc_url=None, chain_id=CHAIN_ID)


def test_encode_constructor_args(forge):
    args = ("cre8ors", "8888", DEPLOYER, ["150000000000000000", ZERO_ADDRESS, MERKLE_ROOT])
    sales_config = (150000000000000000, ZERO_ADDRESS, b"\x00" * 32)
    expected = encode(
        ["string", "uint64", "address", "(uint104,address,bytes32)"],
        ["cre8ors", 8888, to_checksum_address(DEPLOYER), sales_config],
    )
    assert forge.encode_constructor_args(CRE8ORS, args) == "0x" + expected.hex()


def test_encode_rejects_wrong_number_of_arguments(forge):
    with pytest.raises(ConfigurationFailure, match="ABI requires 4, Got 1"):
        forge.encode_constructor_args(CRE8ORS, ("cre8ors",))


def test_encode_rejects_malformed_tuple(forge):
    with pytest.raises(ConfigurationFailure, match="Expected 3 values"):
        forge.encode_constructor_args(CRE8ORS, ("cre8ors", 1, DEPLOYER, ["1", ZERO_ADDRESS]))


def test_artifact_requires_source(forge):
    with pytest.raises(ConfigurationFailure, match="must name its source file"):
        forge.artifact_filepath(ContractRef(source=None, name="Cre8ors"))


def test_verify(forge, monkeypatch):
    run = _patch_run(monkeypatch, stdout="Contract successfully verified\n")
    args = ("cre8ors", 8888, DEPLOYER, [1, ZERO_ADDRESS, MERKLE_ROOT])
    address = to_checksum_address(DEPLOYED_TO)

    result = forge.verify(CRE8ORS, address, args)

    (command, _), = run.commands
    assert command[:9] == [
        "forge",
        "verify-contract",
        address,
        "src/Cre8ors.sol:Cre8ors",
        "--chain",
        str(CHAIN_ID),
        "--etherscan-api-key",
        "ABC123",
        "--watch",
    ]
    assert command[9:] == ["--constructor-args", forge.encode_constructor_args(CRE8ORS, args)]
    assert result.address == address
    assert result.details == "Contract successfully verified"


def test_verify_requires_api_key(project_root, monkeypatch):
    run = _patch_run(monkeypatch)
    forge = ForgeToolchain(rpc_url=RPC_URL, chain_id=CHAIN_ID, project_root=project_root)

    with pytest.raises(ConfigurationFailure, match="API key"):
        forge.verify(CRE8ORS, to_checksum_address(DEPLOYED_TO), ())
    assert run.commands == []


@pytest.mark.parametrize(
    "value,formatted",
    [
        ("cre8ors", "cre8ors"),
        (8888, "8888"),
        (True, "true"),
        (False, "false"),
        (b"\x12\x34", "0x1234"),
        (["1", ["2", 3]], "[1,[2,3]]"),
        (("a", "b"), "[a,b]"),
    ],
)
def test_format_cli_arg(value, formatted):
    assert _format_cli_arg(value) == formatted


def test_encode_accepts_tuple_strings(forge):
    as_list = ("cre8ors", "8888", DEPLOYER, ["150000000000000000", ZERO_ADDRESS, MERKLE_ROOT])
    as_string = as_list[:3] + (f"(150000000000000000, {ZERO_ADDRESS}, {MERKLE_ROOT})",)
    assert forge.encode_constructor_args(CRE8ORS, as_string) == forge.encode_constructor_args(
        CRE8ORS, as_list
    )


@pytest.mark.parametrize(
    "value,items",
    [
        ("(1,0xabc)", ["1", "0xabc"]),
        (" [1, 2, 3] ", ["1", "2", "3"]),
        ("(1,(2,3),[4,5])", ["1", "(2,3)", "[4,5]"]),
        ("()", []),
    ],
)
def test_split_composite(value, items):
    assert _split_composite(value) == items


@pytest.mark.parametrize("value", ["1,2", "(1,2]", "(", ""])
def test_split_malformed_composite(value):
    with pytest.raises(ConfigurationFailure, match="Malformed tuple or array value"):
        _split_composite(value)


#
# ape
#

SALES_CONFIG_TYPE = "(uint104,address,bytes32)"


class FakeConstructor:
    def __init__(self, types):
        self.abi = SimpleNamespace(
            inputs=[SimpleNamespace(canonical_type=abi_type) for abi_type in types]
        )
        self.encoded = list()

    def encode_input(self, *args):
        self.encoded.append(args)
        return b""


class FakeAccount:
    address = DEPLOYER

    def __init__(self):
        self.deployments = list()

    def deploy(self, container, *args, publish):
        self.deployments.append((container, args, publish))
        receipt = SimpleNamespace(
            txn_hash="0xabcdef",
            block_number=17850000,
            transaction=SimpleNamespace(sender=DEPLOYER),
        )
        return SimpleNamespace(address=DEPLOYED_TO, receipt=receipt)


class FakeExplorer:
    def __init__(self):
        self.published = list()

    def publish_contract(self, address):
        self.published.append(address)


@pytest.fixture
def container(monkeypatch):
    container = SimpleNamespace(
        constructor=FakeConstructor(["string", "uint64", "address", SALES_CONFIG_TYPE])
    )
    monkeypatch.setattr(toolchain_module, "get_contract_container", lambda name: container)
    return container


def _patch_explorer(monkeypatch, explorer):
    network = SimpleNamespace(name="sepolia", explorer=explorer)
    monkeypatch.setattr(
        toolchain_module, "networks", SimpleNamespace(provider=SimpleNamespace(network=network))
    )


def test_ape_deploy(container):
    account = FakeAccount()
    ape = ApeToolchain(account=account)
    args = (
        "cre8ors",
        "8888",
        DEPLOYER.lower(),
        f"(150000000000000000,{ZERO_ADDRESS},{MERKLE_ROOT})",
    )

    result = ape.deploy(CRE8ORS, args)

    assert ape.deployer == DEPLOYER
    (deployed, deploy_args, publish), = account.deployments
    assert deployed is container
    assert publish is False
    assert deploy_args == (
        "cre8ors",
        8888,
        to_checksum_address(DEPLOYER),
        (150000000000000000, ZERO_ADDRESS, b"\x00" * 32),
    )
    assert result.deployed_address == to_checksum_address(DEPLOYED_TO)
    assert result.constructor_args == args
    assert result.metadata == {
        "tx_hash": "0xabcdef",
        "block_number": 17850000,
        "deployer": DEPLOYER,
    }


def test_ape_deploy_rejects_wrong_number_of_arguments(container):
    account = FakeAccount()
    with pytest.raises(ConfigurationFailure, match="ABI requires 4, Got 2"):
        ApeToolchain(account=account).deploy(CRE8ORS, ("cre8ors", 8888))
    assert account.deployments == []


def test_ape_verify(container, monkeypatch):
    explorer = FakeExplorer()
    _patch_explorer(monkeypatch, explorer)
    address = to_checksum_address(DEPLOYED_TO)
    args = ("cre8ors", 8888, DEPLOYER, ["1", ZERO_ADDRESS, MERKLE_ROOT])

    result = ApeToolchain(account=FakeAccount()).verify(CRE8ORS, address, args)

    assert explorer.published == [address]
    assert container.constructor.encoded == [
        ("cre8ors", 8888, to_checksum_address(DEPLOYER), (1, ZERO_ADDRESS, b"\x00" * 32))
    ]
    assert result.address == address


def test_ape_verify_rejects_mismatched_arguments(container, monkeypatch):
    explorer = FakeExplorer()
    _patch_explorer(monkeypatch, explorer)
    with pytest.raises(ConfigurationFailure, match="Expected 3 values"):
        ApeToolchain(account=FakeAccount()).verify(
            CRE8ORS, to_checksum_address(DEPLOYED_TO), ("cre8ors", 8888, DEPLOYER, ["1"])
        )
    assert explorer.published == []


def test_ape_verify_requires_explorer(container, monkeypatch):
    _patch_explorer(monkeypatch, None)
    args = ("cre8ors", 8888, DEPLOYER, ["1", ZERO_ADDRESS, MERKLE_ROOT])
    with pytest.raises(ConfigurationFailure, match="No explorer plugin available"):
        ApeToolchain(account=FakeAccount()).verify(
            CRE8ORS, to_checksum_address(DEPLOYED_TO), args
        )
