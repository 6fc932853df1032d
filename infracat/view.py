"""
Rendering

Pure functions from AppState to rich renderables. The Textual shell puts the
result into a Static widget; nothing here touches the terminal directly.
"""

from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from infracat import tfvars
from infracat.catalog import FieldCatalog
from infracat.controller import AppState, Scene
from infracat.environment import EnvironmentStatus
from infracat.presets import PresetStore
from infracat.registry import DeploymentSummary
from infracat.state import LifecycleState

TITLE = "Infrastructure Catalog"
VALUE_WIDTH = 38

STATE_STYLES = {
    LifecycleState.UNKNOWN: "dim",
    LifecycleState.READY: "yellow",
    LifecycleState.INITIALIZED: "cyan",
    LifecycleState.DEPLOYED: "green",
}

FOOTERS = {
    Scene.LAUNCHER: "[↑/↓] Select │ [N] New │ [Enter] View │ [E] Edit │ [A] Apply │ [R] Refresh │ [Q] Quit",
    Scene.EDIT_TABLE: "[E/Enter] Edit │ [Esc] Back",
    Scene.CREATE_FORM: "[↑/↓] Field │ [Tab] Next │ [←/→] Choose │ [F2/F3] Preset │ [Enter] Create │ [Esc] Cancel",
    Scene.EDIT_FORM: "[↑/↓] Field │ [Tab] Next │ [←/→] Choose │ [Enter] Save │ [F5] Apply │ [Esc] Cancel",
}


# ─────────────────────────────────────────────────────────────────────────────
# HEADER
# ─────────────────────────────────────────────────────────────────────────────

def environment_text(env: EnvironmentStatus | None) -> Text:
    text = Text()
    if env is None:
        return text.append("checking environment...", style="dim")
    text.append("AWS", style="green" if env.aws_ok else "red")
    text.append("  ")
    text.append("Vault", style="green" if env.vault_ok else "red")
    text.append("  ")
    if env.git_branch is None:
        text.append("git ?", style="red")
    elif env.git_dirty:
        text.append(f"git {env.git_branch}*", style="yellow")
    else:
        text.append(f"git {env.git_branch}", style="green")
    return text


def header(state: AppState) -> Table:
    grid = Table.grid(expand=True)
    grid.add_column(justify="left")
    grid.add_column(justify="right")
    grid.add_row(Text(TITLE, style="bold bright_cyan"), environment_text(state.environment))
    return grid


# ─────────────────────────────────────────────────────────────────────────────
# LAUNCHER
# ─────────────────────────────────────────────────────────────────────────────

def state_cell(dep: DeploymentSummary) -> Text:
    style = STATE_STYLES.get(dep.state, "")
    if dep.partial:
        style = "red"
    return Text(dep.state_label, style=style)


def deployments_table(deployments, selected: int) -> Table:
    table = Table(title="Deployments", border_style="cyan", expand=True)
    table.add_column("Name", style="bold")
    table.add_column("Description", style="dim")
    table.add_column("State")
    table.add_column("Last Action", style="dim")
    table.add_column("Modified", style="dim")
    for i, dep in enumerate(deployments):
        table.add_row(
            dep.name, dep.description, state_cell(dep), dep.last_action, dep.last_modified,
            style="reverse" if i == selected else None,
        )
    if not deployments:
        table.add_row("[dim]No deployments yet. Press N to create one.[/dim]", "", "", "", "")
    return table


def variables_table(dep: DeploymentSummary | None, catalog: FieldCatalog, title: str = "Variables") -> Table:
    table = Table(title=title, show_header=False, border_style="cyan", expand=True)
    table.add_column("Field", style="dim")
    table.add_column("Value", style="green")
    if dep is None:
        return table
    for key, raw in dep.variables.items():
        descriptor = catalog.describe(key)
        table.add_row(descriptor.label, tfvars.display(descriptor.kind, raw))
    if dep.error:
        table.add_row("Last error", f"[red]{dep.error}[/red]")
    return table


def launcher_body(state: AppState, catalog: FieldCatalog) -> Table:
    grid = Table.grid(expand=True, padding=(0, 1))
    grid.add_column(ratio=3)
    grid.add_column(ratio=2)
    grid.add_row(
        deployments_table(state.deployments, state.selected),
        variables_table(state.selected_deployment, catalog),
    )
    return grid


# ─────────────────────────────────────────────────────────────────────────────
# FORMS
# ─────────────────────────────────────────────────────────────────────────────

def form_lines(state: AppState) -> Text:
    form = state.form
    text = Text()
    for i, f in enumerate(form.fields):
        focused = i == form.focus
        value = f.value
        if f.is_choice:
            value = f"‹ {value} ›" if value else "‹ none ›"
            if f.key in state.fetch_tokens:
                value += "  (loading...)"
        elif focused:
            value += "▏"
        marker = "›" if focused else " "
        line = f"{marker} {f.descriptor.label:<25}: > {value:<{VALUE_WIDTH}}"
        style = "bold bright_cyan" if focused else ("yellow" if f.changed and state.scene == Scene.EDIT_FORM else "")
        text.append(line + "\n", style=style)
    return text


def form_body(state: AppState, presets: PresetStore) -> Group:
    parts = []
    if state.scene == Scene.CREATE_FORM:
        parts.append(Text(f"[Preset: {presets[state.preset_index].name}] (F2/F3 to switch)", style="dim"))
    else:
        parts.append(Text(f"Editing {state.edit_name}", style="dim"))
    parts.append(form_lines(state))
    return Group(*parts)


# ─────────────────────────────────────────────────────────────────────────────
# SCREEN
# ─────────────────────────────────────────────────────────────────────────────

def tooltip(state: AppState) -> Text:
    if state.busy:
        return Text(f"⏳ {state.busy_message}  (press q to quit)", style="bold yellow")
    if state.status:
        style = "red" if "fail" in state.status.lower() or "could not" in state.status.lower() else "cyan"
        return Text(state.status, style=style)
    if state.form is not None:
        return Text(state.form.focused.descriptor.help, style="dim")
    return Text("")


def render(state: AppState, catalog: FieldCatalog, presets: PresetStore) -> Group:
    if state.scene == Scene.LAUNCHER:
        body = launcher_body(state, catalog)
    elif state.scene == Scene.EDIT_TABLE:
        dep = state.selected_deployment
        body = variables_table(dep, catalog, title=dep.name if dep else "Variables")
    else:
        body = form_body(state, presets)

    return Group(
        header(state),
        body,
        tooltip(state),
        Panel(Text(FOOTERS[state.scene], justify="center"), border_style="dim"),
    )
