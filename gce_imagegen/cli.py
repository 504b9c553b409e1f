"""Thin CLI wrapper for gce_imagegen.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from gce_imagegen import __version__
from gce_imagegen.config import (
    ConfigurationError,
    Settings,
    get_settings,
    print_settings_json,
    resolve_build_config,
)

app = typer.Typer(
    name="imagegen",
    help="GCE Image Generator - bake and publish one machine image per component",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def _default(field: str) -> str:
    return str(Settings.model_fields[field].default)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"gce-imagegen version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """GCE Image Generator - bake and publish one machine image per component."""


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        typer.echo(print_settings_json(settings))
        return

    def show(value: object) -> str:
        return str(value) if value not in (None, "") else "(from gcloud)"

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Projects:[/bold]")
    console.print(f"  Account:             {show(settings.account)}")
    console.print(f"  Build project:       {show(settings.build_project)}")
    console.print(f"  Publish project:     {settings.publish_project or '(build project)'}")
    console.print(f"  Image project:       {settings.image_project or '(from catalog)'}")
    console.print()
    console.print("[bold]Build:[/bold]")
    console.print(f"  Version:             {settings.version}")
    console.print(f"  Install script:      {settings.install_script}")
    console.print(f"  Update OS:           {settings.update_os}")
    console.print(f"  Source image:        {settings.source_image or '(from family)'}")
    console.print(f"  Base image family:   {settings.base_image_family}")
    console.print(f"  Zone:                {settings.zone}")
    console.print(f"  Machine type:        {settings.machine_type}")
    console.print(f"  SSH key file:        {settings.ssh_key_file}")
    console.print()
    console.print("[bold]Output:[/bold]")
    console.print(f"  Log directory:       {settings.log_dir}")
    console.print(f"  Log level:           {settings.log_level}")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  Startup delay:       {settings.startup_delay}")
    console.print(f"  Startup poll:        {settings.startup_poll_interval}")
    timeout = settings.command_timeout if settings.command_timeout else "(none)"
    console.print(f"  Command timeout:     {timeout}")


@app.command("components")
def components_list(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List the components that get an image."""
    from gce_imagegen.components import get_components

    entries = get_components()
    if json_output:
        output = [{"artifact": e.artifact, "service": e.service} for e in entries]
        typer.echo(json.dumps(output, indent=2))
        return

    console.print(f"[bold]{len(entries)} component(s):[/bold]")
    for e in entries:
        console.print(f"  [green]{e.artifact}[/green] -> {e.service}")


@app.command()
def bake(
    account: Annotated[
        str | None,
        typer.Option(
            "--account",
            help="Use this gcloud account to build the image.",
            show_default="active gcloud account",
        ),
    ] = None,
    image_project: Annotated[
        str | None,
        typer.Option(
            "--image_project",
            help="The project for the source or base image.",
            show_default="from the image catalog",
        ),
    ] = None,
    install_script: Annotated[
        str | None,
        typer.Option(
            "--install_script",
            help="The path or URL to the install script to use.",
            show_default=_default("install_script"),
        ),
    ] = None,
    no_update_os: Annotated[
        bool,
        typer.Option("--no_update_os", help="Do not force an upgrade-dist of the base OS."),
    ] = False,
    build_project: Annotated[
        str | None,
        typer.Option(
            "--build_project",
            help="Build the images in this project.",
            show_default="active gcloud project",
        ),
    ] = None,
    publish_project: Annotated[
        str | None,
        typer.Option(
            "--publish_project",
            help="Publish the images in this project.",
            show_default="build project",
        ),
    ] = None,
    version: Annotated[
        str | None,
        typer.Option(
            "--version",
            help="The exact platform version to bake images for.",
            show_default=_default("version"),
        ),
    ] = None,
    zone: Annotated[
        str | None,
        typer.Option(
            "--zone",
            help="Zone to use when building the image. The final image is global.",
            show_default=_default("zone"),
        ),
    ] = None,
    source_image: Annotated[
        str | None,
        typer.Option(
            "--source_image",
            help="Base image to install onto.",
            show_default="newest image of the family",
        ),
    ] = None,
    base_image_family: Annotated[
        str | None,
        typer.Option(
            "--base_image_family",
            help="Image family searched when no source image is given.",
            show_default=_default("base_image_family"),
        ),
    ] = None,
    ssh_key_file: Annotated[
        Path | None,
        typer.Option(
            "--ssh_key_file",
            help="SSH key for remote sessions.",
            show_default="~/.ssh/google_empty",
        ),
    ] = None,
    log_dir: Annotated[
        Path | None,
        typer.Option(
            "--log_dir",
            help="Directory for per-component logs.",
            show_default="current directory",
        ),
    ] = None,
) -> None:
    """Bake, publish and clean up an image for every component.

    Unset options fall back to GCE_IMG_* environment variables, then to
    the active gcloud configuration and the image catalog. The exit
    status is the number of components that failed.
    """
    from gce_imagegen.builds.defaults import fix_defaults
    from gce_imagegen.builds.service import bake_all, render_logs
    from gce_imagegen.components import get_components
    from gce_imagegen.gcloud.runner import CommandError, CommandRunner
    from gce_imagegen.gcloud.ssh import create_empty_ssh_key

    settings = get_settings()
    _configure_logging(settings.log_level)

    build_config = resolve_build_config(
        settings,
        account=account,
        image_project=image_project,
        install_script=install_script,
        update_os=False if no_update_os else None,
        build_project=build_project,
        publish_project=publish_project,
        version=version,
        zone=zone,
        source_image=source_image,
        base_image_family=base_image_family,
        ssh_key_file=ssh_key_file,
        log_dir=log_dir,
    )

    runner = CommandRunner(timeout=settings.command_timeout)
    try:
        build_config = fix_defaults(build_config, runner, gcloud_bin=settings.gcloud_bin)
        create_empty_ssh_key(build_config.ssh_key_file, runner)
    except (ConfigurationError, CommandError) as e:
        err_console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None

    report = bake_all(build_config, settings, get_components())

    typer.echo(render_logs(report.results))

    if report.failed:
        console.print("[red]Some jobs failed. Exiting...[/red]")
        raise typer.Exit(code=report.exit_status)

    console.print("[green]All jobs succeeded.[/green]")
    console.print(f"{datetime.now():%c}: DONE")


__all__ = ["app"]
