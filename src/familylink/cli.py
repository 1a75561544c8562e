"""
Command-line interface for FamilyLink.

Manages family trees stored in a local SQLite database and renders their
generational layout.
"""

from __future__ import annotations

import json
import sys
from datetime import date, datetime
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from familylink import __version__
from familylink.api.service import FamilyTreeService, MutationResult
from familylink.config import FamilyLinkConfig, configure_logging
from familylink.core.exceptions import FamilyLinkError
from familylink.core.layout import LayoutEngine
from familylink.core.models import PrivacyTier, SensitiveField
from familylink.core.privacy import format_life_years
from familylink.seed import seed_demo_family
from familylink.store.client import FamilyStore

console = Console()

TIERS = click.Choice([t.value for t in PrivacyTier])


def _parse_date(ctx, param, value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise click.BadParameter("expected YYYY-MM-DD")


def _service(ctx: click.Context) -> FamilyTreeService:
    """Open the store once per invocation and wrap it in a service."""
    if "service" not in ctx.obj:
        config: FamilyLinkConfig = ctx.obj["config"]
        store = FamilyStore(config.database_path)
        store.connect()
        ctx.call_on_close(store.close)
        ctx.obj["service"] = FamilyTreeService(
            store, layout=LayoutEngine(config.layout_config())
        )
    return ctx.obj["service"]


def _report(result: MutationResult, success: str) -> None:
    if result.accepted:
        edge_id = result.edge.id if result.edge else ""
        console.print(f"[green]{success}[/green] {edge_id}")
        return
    console.print(f"[red]Rejected ({result.reason.value}): {result.message}[/red]")
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="familylink")
@click.option("--db", "db_path", envvar="FAMILYLINK_DB", help="Path to the SQLite database")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, db_path, verbose):
    """
    FamilyLink family tree manager.

    Build kinship graphs, validate relationships and render generational
    layouts with per-field privacy.
    """
    ctx.ensure_object(dict)
    config = FamilyLinkConfig.from_env()
    if db_path:
        config.database_path = db_path
    if verbose:
        config.log_level = "DEBUG"
    configure_logging(config.log_level)
    ctx.obj["config"] = config


@cli.command()
@click.pass_context
def init(ctx):
    """Create the database schema."""
    _service(ctx)
    console.print(f"[green]Database ready:[/green] {ctx.obj['config'].database_path}")


@cli.command()
@click.pass_context
def seed(ctx):
    """Load the three-generation demo family."""
    family = seed_demo_family(_service(ctx))
    console.print(f"[green]Demo family:[/green] {family.name} ({family.id})")


# =============================================================================
# Family and Person Commands
# =============================================================================

@cli.group()
def family():
    """Family management."""
    pass


@family.command("create")
@click.argument("name")
@click.argument("slug")
@click.option("--description", "-d", help="Short description")
@click.pass_context
def family_create(ctx, name: str, slug: str, description: Optional[str]):
    """Create a new family."""
    try:
        created = _service(ctx).create_family(name, slug, description)
    except FamilyLinkError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    console.print(f"[green]Created family[/green] {created.id}")


@family.command("update")
@click.argument("family_id")
@click.option("--name", "-n", help="New name")
@click.option("--slug", help="New slug")
@click.option("--description", "-d", help="New description")
@click.pass_context
def family_update(ctx, family_id: str, name: Optional[str], slug: Optional[str], description: Optional[str]):
    """Change a family's name, slug or description."""
    try:
        updated = _service(ctx).update_family(family_id, name=name, slug=slug, description=description)
    except FamilyLinkError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    console.print(f"[green]Updated family[/green] {updated.name} ({updated.slug})")


@family.command("list")
@click.pass_context
def family_list(ctx):
    """List all families."""
    table = Table(title="Families")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Slug")
    for fam in _service(ctx).store.list_families():
        table.add_row(fam.id, fam.name, fam.slug)
    console.print(table)


@cli.group()
def person():
    """Person management."""
    pass


@person.command("add")
@click.argument("family_id")
@click.option("--given", "-g", required=True, help="Given name")
@click.option("--middle", "-m", help="Middle name")
@click.option("--surname", "-s", help="Family name")
@click.option("--gender", help="Gender (free text)")
@click.option("--born", callback=_parse_date, help="Birth date (YYYY-MM-DD)")
@click.option("--died", callback=_parse_date, help="Death date (YYYY-MM-DD)")
@click.option("--notes", help="Notes")
@click.option(
    "--privacy", "-p", multiple=True,
    help="FIELD=TIER, e.g. birthDate=public (repeatable)",
)
@click.pass_context
def person_add(ctx, family_id, given, middle, surname, gender, born, died, notes, privacy):
    """Add a person to a family."""
    tags = {}
    for item in privacy:
        field, _, tier = item.partition("=")
        try:
            tags[SensitiveField(field)] = PrivacyTier(tier)
        except ValueError:
            console.print(f"[red]Error: invalid privacy tag {item!r}[/red]")
            sys.exit(1)

    try:
        created = _service(ctx).create_person(
            family_id,
            given_name=given,
            middle_name=middle,
            family_name=surname,
            gender=gender,
            birth_date=born,
            death_date=died,
            notes=notes,
            privacy=tags,
        )
    except FamilyLinkError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    console.print(f"[green]Added[/green] {created.display_name()} {created.id}")


@person.command("list")
@click.argument("family_id")
@click.option("--search", "-q", help="Filter by name")
@click.pass_context
def person_list(ctx, family_id: str, search: Optional[str]):
    """List persons of a family."""
    service = _service(ctx)
    persons = (
        service.search_persons(family_id, search)
        if search else service.store.list_persons(family_id)
    )

    if not persons:
        console.print("[yellow]No persons found[/yellow]")
        return

    table = Table(title="Persons")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Gender")
    table.add_column("Life")
    for p in persons:
        table.add_row(p.id, p.display_name(), p.gender or "-", format_life_years(p.birth_date, p.death_date))
    console.print(table)


@person.command("show")
@click.argument("person_id")
@click.option("--tier", "-t", type=TIERS, default="public", help="Viewer tier")
@click.option("--family-member/--no-family-member", default=False, help="Viewer is a family member")
@click.pass_context
def person_show(ctx, person_id: str, tier: str, family_member: bool):
    """Show a person as a given viewer would see them."""
    try:
        view = _service(ctx).get_person(person_id, tier, family_member)
    except FamilyLinkError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    console.print_json(json.dumps(view, default=str))


@cli.command()
@click.argument("person_id")
@click.pass_context
def siblings(ctx, person_id: str):
    """List siblings of a person."""
    try:
        found = _service(ctx).get_siblings(person_id)
    except FamilyLinkError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    if not found:
        console.print("[yellow]No siblings[/yellow]")
    for sibling in found:
        console.print(f"  {sibling.display_name()} [dim]{sibling.id}[/dim]")


# =============================================================================
# Relationship Commands
# =============================================================================

@cli.group()
def relate():
    """Create, end and remove relationships."""
    pass


@relate.command("parent")
@click.argument("parent_id")
@click.argument("child_id")
@click.pass_context
def relate_parent(ctx, parent_id: str, child_id: str):
    """Record PARENT_ID as a parent of CHILD_ID."""
    _report(_service(ctx).propose_parent_child(parent_id, child_id), "Added parent-child")


@relate.command("spouse")
@click.argument("a_id")
@click.argument("b_id")
@click.option("--since", callback=_parse_date, help="Start date (YYYY-MM-DD)")
@click.pass_context
def relate_spouse(ctx, a_id: str, b_id: str, since: Optional[date]):
    """Link two persons as spouses."""
    _report(_service(ctx).propose_spouse_link(a_id, b_id, start_date=since), "Added spouse link")


@relate.command("end")
@click.argument("edge_id")
@click.option("--on", "end_date", callback=_parse_date, help="End date (YYYY-MM-DD), default today")
@click.pass_context
def relate_end(ctx, edge_id: str, end_date: Optional[date]):
    """End a spouse link."""
    _report(_service(ctx).end_spouse_link(edge_id, end_date), "Ended spouse link")


@relate.command("remove")
@click.argument("edge_id")
@click.pass_context
def relate_remove(ctx, edge_id: str):
    """Remove a relationship by id."""
    _report(_service(ctx).propose_edge_removal(edge_id), "Removed")


# =============================================================================
# Memory Commands
# =============================================================================

@cli.group()
def memory():
    """Family memory feed."""
    pass


@memory.command("add")
@click.argument("family_id")
@click.option("--title", required=True, help="Title")
@click.option("--body", required=True, help="Story text")
@click.option("--image-url", help="Photo URL")
@click.option("--author", help="Who is posting")
@click.option("--tag", "tags", multiple=True, help="Tagged person id (repeatable)")
@click.pass_context
def memory_add(ctx, family_id, title, body, image_url, author, tags):
    """Post a memory to a family's feed."""
    try:
        created = _service(ctx).create_memory(
            family_id,
            title=title,
            body=body,
            image_url=image_url,
            author=author,
            tagged_person_ids=list(tags),
        )
    except FamilyLinkError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    console.print(f"[green]Added memory[/green] {created.id}")


@memory.command("list")
@click.argument("family_id")
@click.option("--person", "person_id", help="Only memories tagging this person")
@click.pass_context
def memory_list(ctx, family_id: str, person_id: Optional[str]):
    """List a family's memories, newest first."""
    service = _service(ctx)
    try:
        memories = service.get_memories(family_id, person_id)
    except FamilyLinkError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if not memories:
        console.print("[yellow]No memories found[/yellow]")
        return

    names = {p.id: p.given_name for p in service.store.list_persons(family_id)}
    table = Table(title="Memories")
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Tagged")
    table.add_column("Posted")
    for m in memories:
        tagged = ", ".join(names.get(pid, pid) for pid in m.tagged_person_ids)
        table.add_row(m.id, m.title, tagged or "-", m.created_at.strftime("%Y-%m-%d"))
    console.print(table)


@memory.command("show")
@click.argument("memory_id")
@click.pass_context
def memory_show(ctx, memory_id: str):
    """Show one memory."""
    try:
        found = _service(ctx).get_memory(memory_id)
    except FamilyLinkError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    console.print_json(found.model_dump_json(by_alias=True))


@memory.command("edit")
@click.argument("memory_id")
@click.option("--title", help="New title")
@click.option("--body", help="New story text")
@click.option("--image-url", help="New photo URL (empty string clears it)")
@click.option("--tag", "tags", multiple=True, help="Replace tags with these person ids (repeatable)")
@click.pass_context
def memory_edit(ctx, memory_id, title, body, image_url, tags):
    """Change a memory's text, photo or tags."""
    try:
        _service(ctx).update_memory(
            memory_id,
            title=title,
            body=body,
            image_url=image_url,
            tagged_person_ids=list(tags) if tags else None,
        )
    except FamilyLinkError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    console.print(f"[green]Updated memory[/green] {memory_id}")


@memory.command("remove")
@click.argument("memory_id")
@click.pass_context
def memory_remove(ctx, memory_id: str):
    """Delete a memory."""
    try:
        _service(ctx).delete_memory(memory_id)
    except FamilyLinkError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    console.print(f"[green]Removed memory[/green] {memory_id}")


# =============================================================================
# Layout Commands
# =============================================================================

@cli.command()
@click.argument("family_id")
@click.option("--tier", "-t", type=TIERS, default="public", help="Viewer tier")
@click.option("--family-member/--no-family-member", default=False, help="Viewer is a family member")
@click.option("--json", "as_json", is_flag=True, help="Output the raw node/edge layout")
@click.pass_context
def layout(ctx, family_id: str, tier: str, family_member: bool, as_json: bool):
    """Compute the generational layout of a family."""
    try:
        tree = _service(ctx).get_layout(family_id, tier, family_member)
    except FamilyLinkError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if as_json:
        click.echo(tree.model_dump_json(by_alias=True, indent=2))
        return

    table = Table(title=f"Layout: {len(tree.nodes)} nodes, {len(tree.edges)} edges")
    table.add_column("Gen", justify="right")
    table.add_column("Node")
    table.add_column("Kind")
    table.add_column("x", justify="right")
    table.add_column("y", justify="right")
    for node in tree.nodes:
        if node.kind == "person":
            label = f"{node.payload.get('givenName', '')} {node.payload.get('familyName') or ''}".strip()
        else:
            label = node.id
        table.add_row(
            str(node.generation),
            label,
            node.kind,
            f"{node.position.x:g}",
            f"{node.position.y:g}",
        )
    console.print(table)


def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
