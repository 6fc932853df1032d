#!/usr/bin/env python3
"""
infracat - Infrastructure Catalog launcher

Terminal dashboard for creating, editing and applying templated
infrastructure deployments.

Usage:
    infracat                      # dashboard
    infracat --status             # deployment table
    infracat --new                # guided creation without the dashboard
    infracat --reset-state NAME   # mark a deployment READY again
"""

import argparse
import logging
import sys
from pathlib import Path

import questionary
from questionary import Style
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from infracat import __version__
from infracat.catalog import CyclicChoice, FieldCatalog, FieldKind, load_field_catalog
from infracat.config import DEFAULT_CONFIG_FILE, Config, load_config
from infracat.errors import FormValidationError, InfracatError, InventoryError
from infracat.form import FormEngine
from infracat.inventory import TemplateLookup
from infracat.logging_config import setup_logging
from infracat.pipeline import DeploymentPipeline
from infracat.presets import PresetStore, load_presets
from infracat.provisioner import Provisioner, check_tool_installed
from infracat.registry import DeploymentRegistry
from infracat.scaffold import identity_from_values
from infracat.state import LifecycleState, StateStore
from infracat.view import STATE_STYLES

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# STYLING
# ─────────────────────────────────────────────────────────────────────────────

console = Console()

PROMPT_STYLE = Style([
    ('qmark', 'fg:cyan bold'),
    ('question', 'bold'),
    ('answer', 'fg:green'),
    ('pointer', 'fg:cyan bold'),
    ('highlighted', 'fg:cyan'),
    ('selected', 'fg:green'),
])


# ─────────────────────────────────────────────────────────────────────────────
# PRE-FLIGHT
# ─────────────────────────────────────────────────────────────────────────────

def run_preflight_checks(binary: str) -> bool:
    """
    Check the provisioning binary is installed.
    Returns True if the check passes, False otherwise.
    """
    console.print("[bold]Pre-flight Checks[/bold]")
    installed, info = check_tool_installed(binary)
    if installed:
        console.print(f"  [green]✓[/green] {binary}: [dim]{info}[/dim]")
    else:
        console.print(f"  [red]✗[/red] {binary}: [red]not found[/red]")
        console.print("    [dim]Install it or set terraform_binary in config.yaml[/dim]")
    console.print()
    return installed


def load_inputs(cfg: Config) -> tuple[FieldCatalog, PresetStore]:
    catalog = load_field_catalog(Path(cfg.fields_path))
    presets = load_presets(Path(cfg.presets_path))
    return catalog, presets


# ─────────────────────────────────────────────────────────────────────────────
# STATUS
# ─────────────────────────────────────────────────────────────────────────────

def display_deployments(cfg: Config) -> int:
    """Print the deployments table."""
    try:
        listing = DeploymentRegistry(Path(cfg.apps_path)).refresh()
    except OSError as e:
        console.print(f"[red]❌ Could not read {cfg.apps_path}: {e}[/red]")
        return 1

    table = Table(title="Deployments", border_style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Description", style="dim")
    table.add_column("State")
    table.add_column("Last Action", style="dim")
    table.add_column("Error")

    for dep in listing.deployments:
        style = "red" if dep.partial else STATE_STYLES.get(dep.state, "")
        table.add_row(
            dep.name, dep.description, f"[{style}]{dep.state_label}[/{style}]" if style else dep.state_label,
            dep.last_action, f"[red]{dep.error}[/red]" if dep.error else "",
        )
    console.print(table)

    for message in listing.errors:
        console.print(f"[yellow]⚠ {message}[/yellow]")
    if not listing.deployments:
        console.print("[dim]No deployments found.[/dim]")
    return 0


# ─────────────────────────────────────────────────────────────────────────────
# RESET
# ─────────────────────────────────────────────────────────────────────────────

def reset_state(cfg: Config, name: str) -> int:
    path = DeploymentRegistry(Path(cfg.apps_path)).path_for(name)
    if not path.is_dir():
        console.print(f"[red]❌ Deployment '{name}' not found in {cfg.apps_path}[/red]")
        return 1
    store = StateStore(path)
    current = store.load()
    console.print(f"Current state: [bold]{current.state.value}[/bold] (last action: {current.last_action or 'none'})")
    if current.error:
        console.print(f"[red]Last error: {current.error}[/red]")
    if not questionary.confirm(f"Reset '{name}' to {LifecycleState.READY.value}?", default=False, style=PROMPT_STYLE).ask():
        console.print("[yellow]Cancelled.[/yellow]")
        return 0
    store.reset()
    console.print("[green]✓ State reset[/green]")
    return 0


# ─────────────────────────────────────────────────────────────────────────────
# GUIDED CREATE
# ─────────────────────────────────────────────────────────────────────────────

def prompt_order(form: FormEngine) -> list[str]:
    """Field keys in layout order, except a dependency trigger is asked before its dependent."""
    keys = [f.key for f in form.fields]
    dep = form.dependency
    if dep and dep.trigger in keys and dep.dependent in keys:
        keys.remove(dep.trigger)
        keys.insert(keys.index(dep.dependent), dep.trigger)
    return keys


def _integer(text: str):
    stripped = text.strip()
    if stripped.lstrip("-").isdigit():
        return True
    return "Enter a whole number"


def prompt_field(form: FormEngine, key: str, lookup: TemplateLookup) -> FormEngine | None:
    """Ask for one field; returns the updated form, or None if the user aborted."""
    field = form.field(key)
    descriptor = field.descriptor
    question = f"{descriptor.label}:"
    options = list(field.options)

    dep = form.dependency
    if isinstance(descriptor.input_mode, CyclicChoice) and descriptor.input_mode.dynamic and dep and key == dep.dependent:
        trigger = form.value(dep.trigger)
        try:
            with console.status(f"[dim]Fetching templates for {trigger}...[/dim]"):
                options = lookup(trigger) if trigger else []
        except InventoryError as e:
            console.print(f"[yellow]⚠ Could not fetch templates: {e}[/yellow]")
            options = []
        form = form.set_options(key, options)

    if options:
        default = form.value(key) if form.value(key) in options else options[0]
        answer = questionary.select(question, choices=options, default=default, style=PROMPT_STYLE).ask()
    elif descriptor.kind == FieldKind.INTEGER:
        answer = questionary.text(question, default=form.value(key), validate=_integer, style=PROMPT_STYLE).ask()
    else:
        answer = questionary.text(question, default=form.value(key), instruction=descriptor.help or None,
                                  style=PROMPT_STYLE).ask()
    if answer is None:
        return None
    return form.set_value(key, answer)


def guided_new(cfg: Config, catalog: FieldCatalog, presets: PresetStore) -> int:
    if not run_preflight_checks(cfg.terraform_binary):
        console.print("[red]❌ Please install missing tools and try again.[/red]")
        return 1

    names = presets.names()
    preset_name = questionary.select("Preset:", choices=names, style=PROMPT_STYLE).ask()
    if preset_name is None:
        return 1
    form = FormEngine.for_create(catalog, cfg.form_fields, presets[names.index(preset_name)])

    lookup = TemplateLookup(cfg)
    for key in prompt_order(form):
        form = prompt_field(form, key, lookup)
        if form is None:
            console.print("\n[yellow]Cancelled.[/yellow]")
            return 1

    try:
        identity = identity_from_values(cfg.provider, form.values())
        updates = form.submit()
    except FormValidationError as e:
        console.print(f"[red]❌ {e}[/red]")
        return 1

    summary = Table(title=identity, show_header=False, border_style="cyan")
    summary.add_column("Field", style="dim")
    summary.add_column("Value", style="green")
    for f in form.fields:
        summary.add_row(f.descriptor.label, f.value)
    console.print(summary)

    if not questionary.confirm("Create and apply this deployment?", default=True, style=PROMPT_STYLE).ask():
        console.print("[yellow]Cancelled.[/yellow]")
        return 0

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task(f"Creating {identity}...", total=None)
        pipeline = DeploymentPipeline(
            cfg, Provisioner(cfg.terraform_binary),
            progress=lambda message: progress.update(task, description=message),
        )
        outcome = pipeline.create(identity, updates)

    if outcome.ok:
        console.print(f"[green]✓ {outcome.message}[/green]")
        console.print(f"[dim]{outcome.path}[/dim]")
        return 0
    console.print(f"[red]❌ {outcome.message}[/red]")
    return 1


# ─────────────────────────────────────────────────────────────────────────────
# DASHBOARD
# ─────────────────────────────────────────────────────────────────────────────

def run_dashboard(cfg: Config, catalog: FieldCatalog, presets: PresetStore) -> int:
    # Imported here so --status and --new work without starting Textual
    from infracat.tui import InfracatApp

    installed, _ = check_tool_installed(cfg.terraform_binary)
    if not installed:
        logger.warning("%s not found on PATH; apply will fail", cfg.terraform_binary)
    InfracatApp(cfg, catalog, presets).run()
    return 0


# ─────────────────────────────────────────────────────────────────────────────
# MAIN
# ─────────────────────────────────────────────────────────────────────────────

def main(argv=None):
    parser = argparse.ArgumentParser(description="Infrastructure Catalog launcher")
    parser.add_argument('--config', default=DEFAULT_CONFIG_FILE, help='Path to config.yaml')
    parser.add_argument('--status', action='store_true', help='Show deployments and exit')
    parser.add_argument('--new', action='store_true', help='Create a deployment with guided prompts')
    parser.add_argument('--reset-state', metavar='NAME', help='Mark a deployment READY again')
    parser.add_argument('--debug', action='store_true', help='Verbose logging')
    parser.add_argument('--log-file', help='Write logs to this file')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    args = parser.parse_args(argv)

    dashboard = not (args.status or args.new or args.reset_state)
    log_file = args.log_file
    if dashboard and args.debug and not log_file:
        log_file = "infracat.log"
    setup_logging(
        level=logging.DEBUG if args.debug else logging.WARNING,
        log_file=log_file,
        console=not dashboard,
    )

    try:
        cfg = load_config(Path(args.config))
        if args.reset_state:
            sys.exit(reset_state(cfg, args.reset_state))
        if args.status:
            sys.exit(display_deployments(cfg))

        catalog, presets = load_inputs(cfg)
        if args.new:
            console.print(Panel.fit(
                "[bold cyan]Infrastructure Catalog[/bold cyan]\n[dim]Guided deployment[/dim]",
                border_style="cyan"
            ))
            console.print()
            sys.exit(guided_new(cfg, catalog, presets))
        sys.exit(run_dashboard(cfg, catalog, presets))
    except InfracatError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
