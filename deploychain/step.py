from deploychain.constants import DEFAULT_MAX_ATTEMPTS
from deploychain.exceptions import DeploymentFailure, VerificationFailure
from deploychain.models import ContractSpec, DeployResult
from deploychain.retry import with_retry
from deploychain.toolchain import Toolchain


def run_step(
    spec: ContractSpec,
    toolchain: Toolchain,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    verify: bool = True,
) -> DeployResult:
    """
    Deploys a single contract and, when it declares verification arguments, verifies it.

    The spec must be fully resolved: addresses of other contracts are injected by the
    orchestrator before the step runs. Raises DeploymentFailure once deployment has
    failed max_attempts times. A contract that deployed but could not be verified is
    still returned; a contract works without explorer verification.
    """
    contract = spec.contract
    print(f"\nDeploying {spec.name} ({contract.location})")

    result = with_retry(
        max_attempts=max_attempts,
        operation=lambda: toolchain.deploy(contract, spec.constructor_args),
        failure=DeploymentFailure,
        label=f"Deploy {spec.name}",
    )
    print(f"[deployed] {contract.location} at {result.deployed_address}")

    if not verify or spec.verify_args is None:
        return result

    try:
        with_retry(
            max_attempts=max_attempts,
            operation=lambda: toolchain.verify(
                contract, result.deployed_address, spec.verify_args
            ),
            failure=VerificationFailure,
            label=f"Verify {spec.name}",
        )
    except VerificationFailure as e:
        print(f"(!) Verification of {contract.location} failed; continuing. {e}")
    else:
        print(f"[verified] {contract.location}")

    return result
