# ==============================================================================
#
#   Docker Maintenance
#
#   Updates containers with the dockcheck helper script and then prunes
#   unused Docker resources. The helper is fetched through the HelperStager,
#   so it is downloaded once per version reference (or once per run, depending
#   on the configured cache policy).
#
# ==============================================================================

import logging
import shlex

from command_runner import CommandRunner
from config import MaintenanceConfig
from helper_stager import HelperStager, StagingError
from host_probe import HostProbe
from steps import RunContext, StepResult

HELPER_NAME = "dockcheck.sh"


class DockerManager:
    """
    Runs container runtime maintenance for the local Docker engine.
    A missing helper script never stops the prune from running.
    """

    def __init__(
        self,
        runner: CommandRunner,
        config: MaintenanceConfig,
        probe: HostProbe,
        stager: HelperStager,
    ) -> None:
        self.runner = runner
        self.config = config
        self.probe = probe
        self.stager = stager

    def is_eligible(self, ctx: RunContext) -> bool:
        return self.config.docker_maintenance and self.probe.tool_present("docker")

    def skip_reason(self) -> str:
        if not self.config.docker_maintenance:
            return "disabled by configuration (DOCKER_MAINTENANCE)"
        return "runtime not installed"

    def run_dockcheck(self) -> StepResult:
        """Stages dockcheck.sh and runs it with the configured options."""
        try:
            helper = self.stager.stage(
                self.config.dockcheck_url, self.config.dockcheck_version, HELPER_NAME
            )
        except StagingError as e:
            logging.error(f"{e}. Skipping container updates.")
            return StepResult(1, f"{HELPER_NAME} unavailable")

        try:
            logging.info(
                "Running dockcheck.sh (updating containers and restarting stacks)..."
            )
            options = shlex.split(self.config.dockcheck_options)
            return StepResult.from_command(
                self.runner.run("bash", str(helper), *options),
                success=f"Ran {HELPER_NAME} ({self.config.dockcheck_version}).",
                failure=f"{HELPER_NAME} failed",
            )
        finally:
            self.stager.release(helper)

    def prune(self) -> StepResult:
        """Removes all unused containers, networks, images and build cache."""
        logging.info(
            "Removing all unused Docker containers, networks and images (forced prune)..."
        )
        return StepResult.from_command(
            self.runner.run("docker", "system", "prune", "--all", "--force"),
            success="Removed unused Docker containers, networks and images.",
            failure="Docker prune failed",
        )

    def maintain(self, ctx: RunContext) -> StepResult:
        """Container maintenance step: helper first, then prune."""
        update = self.run_dockcheck()
        pruned = self.prune()

        messages = [update.message, pruned.message]
        exit_code = update.exit_code or pruned.exit_code
        return StepResult(exit_code, " ".join(messages))
