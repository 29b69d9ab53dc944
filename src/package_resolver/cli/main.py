"""
Package Resolver CLI: resolve a project's dependencies and maintain its lock file.

Usage:
    package-resolver update --repository ./packages.json
    package-resolver update vendor/lib --with-dependencies --dry-run
    package-resolver install --strict --json
    package-resolver status
"""

import asyncio
import json
import logging
import sys
from functools import wraps
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from package_resolver.exceptions import (
    ResolverError,
    SearchBudgetExceeded,
    SolverProblemsError,
    StaleLockWarning,
)

# 2 is left to click for usage errors
EXIT_ERROR = 1
EXIT_UNSOLVABLE = 3
EXIT_BUDGET = 4
EXIT_STALE_LOCK = 5


def _parse_platform(values: tuple[str, ...]) -> dict:
    overrides: dict = {}
    for value in values:
        name, sep, version = value.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"expected NAME=VERSION, got {value!r}", param_hint="--platform")
        overrides[name.strip().lower()] = False if version.strip().lower() == "false" else version.strip()
    return overrides


def project_options(func):
    """Options shared by every command that works on a project."""

    @click.option(
        "--manifest",
        "-m",
        type=click.Path(dir_okay=False),
        default="project.json",
        help="Project manifest file.",
    )
    @click.option(
        "--lock",
        "-l",
        "lock_path",
        type=click.Path(dir_okay=False),
        default=None,
        help="Lock file (defaults to project.lock beside the manifest).",
    )
    @click.option(
        "--repository",
        "-r",
        "repositories",
        multiple=True,
        help="Extra repository: an http(s) URL or a JSON file. Queried before the manifest's own.",
    )
    @click.option("--platform", "-p", multiple=True, help="Platform override as NAME=VERSION (VERSION=false removes it).")
    @click.option("--ignore-platform-reqs", is_flag=True, help="Ignore platform requirements.")
    @click.option("--json", "as_json", is_flag=True, help="Print the result as JSON.")
    @click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging.")
    @wraps(func)
    def wrapper(*args, **kwargs):
        return func(*args, **kwargs)

    return wrapper


def _configure_logging(verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _build_resolver(manifest, lock_path, repositories, platform, ignore_platform_reqs):
    from package_resolver.core.config import ResolverConfig
    from package_resolver.core.resolver import DependencyResolver
    from package_resolver.parsers.manifest import Manifest
    from package_resolver.repositories import PlatformRepository, get_repository

    manifest_path = Path(manifest)
    project = Manifest.from_file(manifest_path)
    config = ResolverConfig.from_env(ignore_platform_reqs=ignore_platform_reqs or None)

    base_dir = manifest_path.parent
    sources = list(repositories) + list(project.repositories)
    repos = [get_repository(source, config=config, base_dir=base_dir) for source in sources]
    overrides = {**project.platform_overrides, **_parse_platform(platform)}

    return DependencyResolver(
        project,
        repos,
        Path(lock_path) if lock_path else manifest_path.with_suffix(".lock"),
        platform=PlatformRepository(overrides),
        config=config,
    )


async def _run(resolver, flow):
    try:
        return await flow
    finally:
        for repository in resolver.repositories:
            aclose = getattr(repository, "aclose", None)
            if aclose is not None:
                await aclose()


def _execute(make_resolver, run, as_json: bool):
    """Run a resolver flow and turn resolver errors into exit codes."""
    console = Console(stderr=True)
    try:
        resolver = make_resolver()
        result = asyncio.run(_run(resolver, run(resolver)))
    except StaleLockWarning as e:
        console.print(f"[bold yellow]{escape(str(e))}[/bold yellow]", soft_wrap=True)
        sys.exit(EXIT_STALE_LOCK)
    except SolverProblemsError as e:
        console.print("[bold red]Your requirements could not be resolved to an installable set of packages.[/bold red]")
        for line in e.problem.explain(e.pool):
            console.print(f"  - {line}", markup=False, soft_wrap=True)
        sys.exit(EXIT_UNSOLVABLE)
    except SearchBudgetExceeded as e:
        console.print(f"[bold red]{escape(str(e))}[/bold red]", soft_wrap=True)
        sys.exit(EXIT_BUDGET)
    except ResolverError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}", soft_wrap=True)
        sys.exit(EXIT_ERROR)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        _print_result(result)


def _print_result(result) -> None:
    console = Console()
    if result.operations:
        table = Table(title="Operations")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Operation", style="cyan")
        table.add_column("Package", style="bold")
        table.add_column("Version")
        for op in result.operations:
            version = op.package.pretty_version
            if op.initial is not None:
                version = f"{op.initial.pretty_version} => {version}"
            table.add_row(str(op.position), op.type.value, op.package.pretty_name, version)
        console.print(table)
    else:
        console.print("[green]Nothing to install, update or remove[/green]")

    if result.stale_lock:
        console.print("[yellow]Warning: the lock file is not up to date with the manifest[/yellow]")
    if result.lock_written:
        console.print("[bold green]Lock file written[/bold green]")
    stats = result.stats
    if stats:
        console.print(
            f"[cyan]Stats:[/cyan] {stats.get('pool_size', 0)} candidates, {stats.get('rules', 0)} rules, "
            f"{stats.get('steps', 0)} steps, {stats.get('total_seconds', 0)}s"
        )


@click.group()
@click.version_option(package_name="package-resolver")
def cli():
    """Package Resolver: dependency resolution and lock files for package manifests."""
    pass


@cli.command()
@project_options
@click.option("--dry-run", is_flag=True, help="Resolve without writing the lock file.")
@click.option("--prefer-lowest", is_flag=True, help="Prefer the lowest matching versions.")
@click.option("--minimal-changes", is_flag=True, help="Keep locked versions wherever the constraints still allow.")
@click.option("--with-dependencies", "-w", is_flag=True, help="Also update the dependencies of the named packages.")
@click.argument("packages", nargs=-1)
def update(
    manifest,
    lock_path,
    repositories,
    platform,
    ignore_platform_reqs,
    as_json,
    verbose,
    dry_run,
    prefer_lowest,
    minimal_changes,
    with_dependencies,
    packages,
):
    """Resolve the manifest and write the lock file.

    Pass PACKAGES to update only those; everything else stays at its locked version.
    """
    _configure_logging(verbose)
    _execute(
        lambda: _build_resolver(manifest, lock_path, repositories, platform, ignore_platform_reqs),
        lambda resolver: resolver.update(
            packages=list(packages),
            with_dependencies=with_dependencies,
            dry_run=dry_run,
            prefer_lowest=prefer_lowest,
            minimal_changes=minimal_changes,
        ),
        as_json,
    )


@cli.command()
@project_options
@click.option("--dry-run", is_flag=True, help="Report operations only.")
@click.option("--strict", is_flag=True, help="Fail when the lock file is out of date.")
@click.option("--no-dev", is_flag=True, help="Skip packages only needed for development.")
def install(
    manifest, lock_path, repositories, platform, ignore_platform_reqs, as_json, verbose, dry_run, strict, no_dev
):
    """Install the versions recorded in the lock file."""
    _configure_logging(verbose)
    _execute(
        lambda: _build_resolver(manifest, lock_path, repositories, platform, ignore_platform_reqs),
        lambda resolver: resolver.install(dry_run=dry_run, strict=strict, include_dev=not no_dev),
        as_json,
    )


@cli.command()
@project_options
def status(manifest, lock_path, repositories, platform, ignore_platform_reqs, as_json, verbose):
    """Show whether the lock file exists and matches the manifest."""
    _configure_logging(verbose)
    try:
        resolver = _build_resolver(manifest, lock_path, repositories, platform, ignore_platform_reqs)
        info = resolver.status()
    except ResolverError as e:
        Console(stderr=True).print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        sys.exit(EXIT_ERROR)

    if as_json:
        click.echo(json.dumps(info, indent=2))
        return

    console = Console()
    if not info["locked"]:
        console.print(f"[yellow]No lock file at {info['lock_file']}[/yellow]")
    elif info["fresh"]:
        console.print(f"[green]{info['lock_file']} is up to date[/green]")
    else:
        console.print(f"[yellow]{info['lock_file']} is out of date, run update[/yellow]")


@cli.command()
@click.option(
    "--lock",
    "-l",
    "lock_path",
    type=click.Path(dir_okay=False),
    default="project.lock",
    help="Lock file to read.",
)
@click.option("--json", "as_json", is_flag=True, help="Print as JSON.")
def show(lock_path, as_json):
    """List the packages recorded in a lock file."""
    from package_resolver.core.json_file import JsonFile

    lock_file = JsonFile(Path(lock_path))
    try:
        data = lock_file.read() if lock_file.exists() else None
    except ResolverError as e:
        Console(stderr=True).print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        sys.exit(EXIT_ERROR)
    if data is None:
        Console(stderr=True).print(f"[bold red]Error:[/bold red] no lock file at {lock_path}")
        sys.exit(EXIT_ERROR)

    rows = [(entry, False) for entry in data.get("packages") or []]
    rows += [(entry, True) for entry in data.get("packages-dev") or []]
    if as_json:
        click.echo(
            json.dumps([{"name": e.get("name"), "version": e.get("version"), "dev": dev} for e, dev in rows], indent=2)
        )
        return

    table = Table(title=str(lock_path))
    table.add_column("Package", style="bold")
    table.add_column("Version", style="cyan")
    table.add_column("Dev")
    for entry, dev in rows:
        table.add_row(str(entry.get("name")), str(entry.get("version")), "yes" if dev else "")
    Console().print(table)


if __name__ == "__main__":
    cli()
