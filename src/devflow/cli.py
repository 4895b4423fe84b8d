"""CLI interface for devflow."""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable

import click
import yaml
from dotenv import load_dotenv
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from devflow.core.errors import DevflowError
from devflow.core.models import (
    ConductReviewRequest,
    ProceedToPhaseRequest,
    ResetDevelopmentRequest,
    StartDevelopmentRequest,
    WhatsNextRequest,
)
from devflow.core.orchestrator import PhaseOrchestrator

# Load environment variables from .env file
load_dotenv()

console = Console()


def _load_config(config_path: Path | None) -> dict:
    """Load configuration from file or use default."""
    if config_path is None:
        config_path = Path("config/default.yaml")

    if not config_path.exists():
        return {}

    try:
        with open(config_path) as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        return {}


def _run(ctx: click.Context, operation: Callable[[PhaseOrchestrator], Awaitable[Any]]) -> Any:
    """Build an orchestrator for the selected project and run one operation."""
    orchestrator = PhaseOrchestrator(ctx.obj["loaded_config"], project_path=ctx.obj["project"])
    try:
        return asyncio.run(operation(orchestrator))
    except DevflowError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


def _emit(ctx: click.Context, result: Any, title: str) -> None:
    """Print a result as JSON or as a rich panel around its instructions."""
    if ctx.obj.get("json"):
        click.echo(json.dumps(result.model_dump(), indent=2))
        return

    data = result.model_dump()
    instructions = data.pop("instructions", "")
    summary = "  ".join(f"[bold]{key}[/bold]: {value}" for key, value in data.items() if not isinstance(value, (list, dict)))
    console.print(Panel(summary, title=title, border_style="cyan"))
    if instructions:
        console.print(Markdown(instructions))


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "--project",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Project directory",
)
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON results")
@click.pass_context
def cli(ctx: click.Context, config: Path | None, project: Path, as_json: bool) -> None:
    """devflow - phase-by-phase guidance for AI coding assistants."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["loaded_config"] = _load_config(config)
    ctx.obj["project"] = project
    ctx.obj["json"] = as_json


@cli.command()
@click.option("--workflow", "-w", default="waterfall", show_default=True, help="Workflow name")
@click.option(
    "--commit",
    "commit_behaviour",
    type=click.Choice(["step", "phase", "end", "none"]),
    default="none",
    show_default=True,
    help="When to create git commits",
)
@click.option("--require-reviews", is_flag=True, help="Gate transitions on reviews")
@click.option("--role", default=None, help="Role of the agent (collaborative workflows)")
@click.pass_context
def start(ctx: click.Context, workflow: str, commit_behaviour: str, require_reviews: bool, role: str | None) -> None:
    """Start development with a workflow."""
    request = StartDevelopmentRequest(
        workflow=workflow,
        commit_behaviour=commit_behaviour,
        require_reviews=require_reviews,
        role=role,
    )
    result = _run(ctx, lambda o: o.start_development(request))
    _emit(ctx, result, "Development started")


@cli.command("next")
@click.option("--context", "context_text", default="", help="What you are working on")
@click.option("--input", "user_input", default="", help="The user's latest request")
@click.option("--summary", default="", help="Conversation summary")
@click.option("--role", default=None, help="Role of the agent")
@click.pass_context
def next_(ctx: click.Context, context_text: str, user_input: str, summary: str, role: str | None) -> None:
    """Ask what to do next."""
    request = WhatsNextRequest(
        context=context_text,
        user_input=user_input,
        conversation_summary=summary,
        role=role,
    )
    result = _run(ctx, lambda o: o.whats_next(request))
    _emit(ctx, result, f"Phase: {result.phase}")


@cli.command()
@click.argument("target_phase")
@click.option("--reason", default="", help="Why the phase is changing")
@click.option(
    "--review-state",
    type=click.Choice(["not-required", "pending", "performed"]),
    default="not-required",
    show_default=True,
)
@click.option("--role", default=None, help="Role of the agent")
@click.pass_context
def proceed(ctx: click.Context, target_phase: str, reason: str, review_state: str, role: str | None) -> None:
    """Move to TARGET_PHASE."""
    request = ProceedToPhaseRequest(
        target_phase=target_phase,
        reason=reason,
        review_state=review_state,
        role=role,
    )
    result = _run(ctx, lambda o: o.proceed_to_phase(request))
    title = f"Review required before {target_phase}" if result.review_pending else f"Phase: {result.phase}"
    _emit(ctx, result, title)


@cli.command()
@click.argument("target_phase")
@click.option("--role", default=None, help="Role of the agent")
@click.pass_context
def review(ctx: click.Context, target_phase: str, role: str | None) -> None:
    """Show review instructions for moving to TARGET_PHASE."""
    result = _run(ctx, lambda o: o.conduct_review(ConductReviewRequest(target_phase=target_phase, role=role)))
    _emit(ctx, result, "Review")


@cli.command()
@click.option("--system-prompt", "include_system_prompt", is_flag=True, help="Also print the assistant system prompt")
@click.pass_context
def resume(ctx: click.Context, include_system_prompt: bool) -> None:
    """Show where development left off."""
    result = _run(ctx, lambda o: o.resume_workflow(include_system_prompt=include_system_prompt))
    if ctx.obj.get("json"):
        click.echo(json.dumps(result.model_dump(), indent=2))
        return

    console.print(Panel(
        f"[bold]Workflow:[/bold] {result.workflow}\n"
        f"[bold]Phase:[/bold] {result.current_phase} - {result.phase_description}\n"
        f"[bold]Plan:[/bold] {result.plan_file_path}"
        + ("" if result.plan_file_exists else " [yellow](missing)[/yellow]")
        + f"\n[bold]Task backend:[/bold] {result.task_backend.get('kind', 'markdown')}",
        title=f"Conversation {result.conversation_id}",
        border_style="cyan",
    ))

    if result.available_transitions:
        table = Table(title="Available Transitions", show_header=True, header_style="bold magenta")
        table.add_column("Trigger", style="cyan")
        table.add_column("To", style="green")
        table.add_column("Review", style="yellow")
        for transition in result.available_transitions:
            table.add_row(transition["trigger"], transition["to"], "yes" if transition["requires_review"] else "")
        console.print(table)

    console.print(Markdown(result.instructions))
    if result.system_prompt:
        console.print(Panel(result.system_prompt, title="System Prompt", border_style="green"))


@cli.command()
@click.option("--reason", default="", help="Why development is being reset")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def reset(ctx: click.Context, reason: str, yes: bool) -> None:
    """Delete conversation state and the plan file."""
    if not yes and not click.confirm("This deletes the conversation state and the plan file. Continue?"):
        console.print("[yellow]Reset cancelled[/yellow]")
        return

    request = ResetDevelopmentRequest(confirm=True, reason=reason)
    result = _run(ctx, lambda o: o.reset_development(request))
    if ctx.obj.get("json"):
        click.echo(json.dumps(result.model_dump(), indent=2))
        return
    console.print(f"[green]{result.message}[/green]")


@cli.group()
def workflows() -> None:
    """Workflow catalog commands."""
    pass


@workflows.command("list")
@click.pass_context
def workflows_list(ctx: click.Context) -> None:
    """List workflows available in the project."""
    orchestrator = PhaseOrchestrator(ctx.obj["loaded_config"], project_path=ctx.obj["project"])
    try:
        infos = orchestrator.list_workflows()
    except DevflowError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    if ctx.obj.get("json"):
        click.echo(json.dumps([info.to_dict() for info in infos], indent=2))
        return

    table = Table(title="Workflows", show_header=True, header_style="bold magenta")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Phases", style="green")
    table.add_column("Source", style="dim")
    for info in infos:
        table.add_row(info.name, info.description, " → ".join(info.phases), info.source)
    console.print(table)


@workflows.command("show")
@click.argument("name")
@click.pass_context
def workflows_show(ctx: click.Context, name: str) -> None:
    """Print the definition of workflow NAME."""
    orchestrator = PhaseOrchestrator(ctx.obj["loaded_config"], project_path=ctx.obj["project"])
    try:
        definition = orchestrator.get_workflow(name)
    except DevflowError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    if ctx.obj.get("json"):
        click.echo(json.dumps(definition, indent=2))
        return
    console.print(Panel(yaml.safe_dump(definition, sort_keys=False), title=name, border_style="cyan"))


@workflows.command("validate")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def workflows_validate(ctx: click.Context, path: Path) -> None:
    """Check that workflow file PATH is a valid definition."""
    orchestrator = PhaseOrchestrator(ctx.obj["loaded_config"], project_path=ctx.obj["project"])
    try:
        definition = orchestrator.workflow_store.validate_file(path)
    except DevflowError as e:
        console.print(f"[red]Invalid workflow:[/red] {e}")
        sys.exit(1)

    console.print(
        f"[green]✓[/green] {path}: workflow '{definition.name}' with "
        f"{len(definition.states)} phases ({' → '.join(definition.phase_names)})"
    )


def main() -> None:
    """Main entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(1)


if __name__ == "__main__":
    main()
