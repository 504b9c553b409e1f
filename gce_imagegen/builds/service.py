"""Build service module.

This module provides the high-level bake API:
- run_component_build(): one component, output captured to its own log
- bake_all(): one concurrent unit per component, wait for all, tally failures
- render_logs(): every captured log between start/end markers

Units share only the frozen BuildConfig and Settings; every resource a
unit touches is named after its component, so no locking is needed.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from gce_imagegen.builds.builder import BakeError, ComponentBuilder
from gce_imagegen.config import BuildConfig, ConfigurationError, Settings
from gce_imagegen.gcloud.runner import CommandError, CommandRunner
from gce_imagegen.types import BuildResult, ComponentEntry

logger = logging.getLogger(__name__)

UNIT_LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def log_path_for(log_dir: Path, component: ComponentEntry) -> Path:
    return log_dir / f"create-{component.service}-image.log"


@dataclass
class BakeReport:
    """Aggregate result of a bake run."""

    results: list[BuildResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def succeeded(self) -> int:
        return self.total - self.failed

    @property
    def exit_status(self) -> int:
        return self.failed


def run_component_build(
    config: BuildConfig,
    settings: Settings,
    component: ComponentEntry,
) -> BuildResult:
    """Build one component with all output going to its log file.

    Args:
        config: Resolved run configuration.
        settings: Tool settings.
        component: Component to build.

    Returns:
        BuildResult with exit status 0 on success, 1 on failure.
    """
    log_path = log_path_for(config.log_dir, component)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    unit_logger = logging.getLogger(f"{__name__}.unit.{component.service}")
    unit_logger.setLevel(settings.log_level)
    unit_logger.propagate = False

    exit_status = 0
    target_image: str | None = None
    error_message: str | None = None

    with log_path.open("w") as log_file:
        handler = logging.StreamHandler(log_file)
        handler.setFormatter(logging.Formatter(UNIT_LOG_FORMAT))
        unit_logger.addHandler(handler)
        try:
            unit_logger.info(
                "Creating component image for %s with artifact %s",
                component.service,
                component.artifact,
            )
            runner = CommandRunner(
                log_file=log_file,
                timeout=settings.command_timeout,
                log=unit_logger,
            )
            builder = ComponentBuilder(config, settings, component, runner)
            target_image = builder.build()
            unit_logger.info("DONE")
        except (CommandError, BakeError, ConfigurationError, OSError) as e:
            exit_status = 1
            error_message = str(e)
            unit_logger.error("Build of %s failed: %s", component.service, e)
        finally:
            handler.flush()
            unit_logger.removeHandler(handler)

    return BuildResult(
        component=component,
        exit_status=exit_status,
        log_path=log_path,
        log_text=log_path.read_text(),
        target_image=target_image,
        error_message=error_message,
    )


def bake_all(
    config: BuildConfig,
    settings: Settings,
    components: list[ComponentEntry],
) -> BakeReport:
    """Build every component concurrently and wait for all of them.

    All units start at once; the returned report lists them in the order
    they were started.
    """
    report = BakeReport()
    if not components:
        logger.warning("No components to build")
        return report

    with ThreadPoolExecutor(
        max_workers=len(components), thread_name_prefix="bake"
    ) as executor:
        jobs: list[tuple[ComponentEntry, Future[BuildResult]]] = []
        for component in components:
            log_path = log_path_for(config.log_dir, component)
            logger.info(
                "Creating component image for %s with artifact %s; "
                "output will be logged to %s...",
                component.service,
                component.artifact,
                log_path,
            )
            jobs.append(
                (
                    component,
                    executor.submit(run_component_build, config, settings, component),
                )
            )

        for component, job in jobs:
            logger.info("Waiting for job %s", component.service)
            try:
                result = job.result()
            except Exception as e:
                logger.exception("Job %s crashed", component.service)
                log_path = log_path_for(config.log_dir, component)
                result = BuildResult(
                    component=component,
                    exit_status=1,
                    log_path=log_path,
                    log_text=log_path.read_text() if log_path.exists() else "",
                    error_message=str(e),
                )
            report.results.append(result)

    logger.info("%d of %d jobs failed", report.failed, report.total)
    return report


def render_logs(results: list[BuildResult]) -> str:
    """Concatenate captured logs, each framed by start/end markers."""
    chunks: list[str] = []
    for result in sorted(results, key=lambda r: r.log_path.name):
        name = result.log_path.name
        chunks.append(f"---- start {name} ----\n\n{result.log_text}\n---- end {name} ----\n")
    return "\n".join(chunks)


__all__ = [
    "BakeReport",
    "bake_all",
    "log_path_for",
    "render_logs",
    "run_component_build",
]
