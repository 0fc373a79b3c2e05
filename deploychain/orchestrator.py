import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from deploychain.config import Config
from deploychain.confirm import _confirm_resolution
from deploychain.exceptions import ConfigurationFailure, DeploymentError
from deploychain.manifest import write_manifest
from deploychain.models import ContractPlan, ContractSpec, DeploymentManifest
from deploychain.step import run_step
from deploychain.toolchain import Toolchain


def validate_plans(plans: Sequence[ContractPlan]) -> None:
    """
    Checks that every plan is unique and only depends on plans listed before it.
    The order of the list is the deployment order, so this also rules out cycles.
    """
    seen: List[str] = list()
    for plan in plans:
        if plan.name in seen:
            raise ConfigurationFailure(f"{plan.name} is planned more than once.")
        for dependency in plan.depends_on:
            if dependency == plan.name:
                raise ConfigurationFailure(f"{plan.name} cannot depend on itself.")
            if dependency not in seen:
                raise ConfigurationFailure(
                    f"{plan.name} depends on {dependency}, "
                    f"which is not deployed before it."
                )
        seen.append(plan.name)


class Orchestrator:
    """
    Deploys a fixed chain of contracts, one at a time, in the given order.

    Each contract is only specified once the contracts it depends on are deployed:
    their addresses are read back from the manifest of the current run and handed
    to the plan's builder.
    """

    def __init__(self, config: Config, toolchain: Toolchain, interactive: bool = False):
        self.config = config
        self.toolchain = toolchain
        self.interactive = interactive

    def run(self, plans: Sequence[ContractPlan]) -> DeploymentManifest:
        validate_plans(plans)

        manifest = DeploymentManifest()
        print(f"\n(i) Deploying {len(plans)} contract(s) to {self.config.network}")
        for plan in plans:
            try:
                spec = self._build(plan, manifest)
                if self.interactive:
                    _confirm_resolution(spec)
                result = run_step(
                    spec,
                    self.toolchain,
                    max_attempts=self.config.max_attempts,
                    verify=self.config.verify,
                )
            except DeploymentError as e:
                # contracts deployed so far stay on chain
                print(
                    f"(!) Aborting deployment; {len(manifest)} of {len(plans)} "
                    f"contract(s) were deployed."
                )
                e.manifest = manifest
                raise

            manifest.record(plan.name, result)
            for note in spec.notes:
                print(f"(i) {spec.name}: {note}")

        return manifest

    @staticmethod
    def _build(plan: ContractPlan, manifest: DeploymentManifest) -> ContractSpec:
        addresses = {name: manifest.address_of(name) for name in plan.depends_on}
        spec = plan.build(addresses)
        if spec.name != plan.name:
            raise ConfigurationFailure(
                f"Plan {plan.name} produced a specification for {spec.name}."
            )
        return spec


def today() -> datetime.date:
    return datetime.datetime.now(datetime.timezone.utc).date()


def deploy(
    config: Config,
    toolchain: Toolchain,
    plans: Sequence[ContractPlan],
    date: Optional[datetime.date] = None,
    interactive: bool = False,
    save_partial: bool = False,
) -> Path:
    """
    Runs the deployment and writes its manifest once every contract is deployed.

    When save_partial is set, the contracts deployed before a fatal failure are
    written to a separate partial manifest before the error propagates.
    """
    date = date or today()
    orchestrator = Orchestrator(config=config, toolchain=toolchain, interactive=interactive)
    try:
        manifest = orchestrator.run(plans)
    except DeploymentError as e:
        if save_partial and e.manifest:
            write_manifest(
                e.manifest,
                network=config.network,
                date=date,
                directory=config.manifest_dir,
                partial=True,
            )
        raise

    return write_manifest(
        manifest,
        network=config.network,
        date=date,
        directory=config.manifest_dir,
    )
