"""proofstore CLI: inspect and check a proof workspace.

Commands:
    proofstore init [CONJECTURE]    create af.toml + workspace dirs (+ schema/meta)
    proofstore list KIND            identifiers of one entity kind
    proofstore show KIND ID         dump one entity as stored
    proofstore rm KIND ID           delete one entity
    proofstore verify               re-read every entity, report corruption
    proofstore schema               print the workspace schema

KIND is one of: nodes, assumptions, defs, lemmas, externals, pending-defs.
"""

from __future__ import annotations

import logging
from pathlib import Path

import click

from proofstore import jsonio
from proofstore.config import StoreConfig, init_config, load_config
from proofstore.errors import ContentHashMismatchError, EntityNotFoundError, StoreError
from proofstore.models import Meta, now_utc
from proofstore.schema import Schema
from proofstore.store import KINDS, ProofStore

FORMAT_VERSION = "1.0"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_cfg(root: str | None) -> StoreConfig:
    try:
        return load_config(root)
    except Exception as exc:
        raise click.ClickException(str(exc)) from exc


def _store(ctx: click.Context) -> ProofStore:
    cfg: StoreConfig = ctx.obj["cfg"]
    return ProofStore.from_config(cfg)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="proofstore")
@click.option("--dir", "root", default=None, help="Project root (default: search upward for af.toml)")
@click.option("-v", "--verbose", is_flag=True, help="Log store operations to stderr")
@click.pass_context
def cli(ctx: click.Context, root: str | None, verbose: bool) -> None:
    """proofstore: durable entity store for proof workspaces."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["root"] = root
    ctx.obj["cfg"] = _load_cfg(root)


# ---------------------------------------------------------------------------
# proofstore init
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("conjecture", required=False)
@click.pass_context
def init(ctx: click.Context, conjecture: str | None) -> None:
    """Create af.toml and the workspace directories."""
    root_path = Path(ctx.obj["root"] or ".").resolve()
    try:
        root_path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise click.ClickException(f"cannot create {root_path}: {exc}") from exc
    try:
        config_path = init_config(root_path)
        click.echo(f"Created {config_path}")
    except FileExistsError:
        click.echo("af.toml already exists, skipping")

    cfg = load_config(root_path)
    ctx.obj["cfg"] = cfg
    store = ProofStore.from_config(cfg)
    try:
        store.init()
        if not store.paths.schema.exists():
            store.write_schema(Schema.default())
            click.echo("Wrote default schema.json")
        if conjecture:
            if store.paths.meta.exists():
                click.echo("meta.json already exists, conjecture not changed")
            else:
                store.write_meta(Meta(conjecture=conjecture, created_at=now_utc(), version=FORMAT_VERSION))
                click.echo("Wrote meta.json")
    except (StoreError, OSError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Workspace : {store.base}")


# ---------------------------------------------------------------------------
# proofstore list / show / rm
# ---------------------------------------------------------------------------

KIND_CHOICE = click.Choice(list(KINDS))


@cli.command("list")
@click.argument("kind", type=KIND_CHOICE)
@click.pass_context
def list_cmd(ctx: click.Context, kind: str) -> None:
    """List identifiers of KIND."""
    try:
        ids = _store(ctx).by_name(kind).list()
    except (StoreError, OSError) as exc:
        raise click.ClickException(str(exc)) from exc
    for entity_id in ids:
        click.echo(str(entity_id))


@cli.command()
@click.argument("kind", type=KIND_CHOICE)
@click.argument("entity_id")
@click.pass_context
def show(ctx: click.Context, kind: str, entity_id: str) -> None:
    """Print one entity as JSON."""
    try:
        entity = _store(ctx).by_name(kind).read(entity_id)
    except EntityNotFoundError as exc:
        raise click.ClickException(f"{kind} not found: {entity_id}") from exc
    except (StoreError, OSError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(jsonio.dumps(entity), nl=False)


@cli.command()
@click.argument("kind", type=KIND_CHOICE)
@click.argument("entity_id")
@click.pass_context
def rm(ctx: click.Context, kind: str, entity_id: str) -> None:
    """Delete one entity."""
    try:
        _store(ctx).by_name(kind).delete(entity_id)
    except EntityNotFoundError as exc:
        raise click.ClickException(f"{kind} not found: {entity_id}") from exc
    except (StoreError, OSError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Deleted {kind} {entity_id}")


# ---------------------------------------------------------------------------
# proofstore verify
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def verify(ctx: click.Context) -> None:
    """Re-read every entity; exit 1 if anything is corrupt.

    Nodes are checked against their content hash. Stray temp files from
    killed writers are reported but do not fail the check.
    """
    store = _store(ctx)
    problems = 0
    checked = 0
    for kind in KINDS:
        bound = store.by_name(kind)
        try:
            ids = bound.list()
        except EntityNotFoundError:
            click.echo(f"{kind}: directory missing", err=True)
            problems += 1
            continue
        for entity_id in ids:
            checked += 1
            try:
                bound.read(entity_id)
            except ContentHashMismatchError as exc:
                problems += 1
                click.echo(f"CORRUPT {kind} {entity_id}: {exc}", err=True)
            except EntityNotFoundError:
                # deleted between list and read by another process
                checked -= 1
            except (StoreError, OSError) as exc:
                problems += 1
                click.echo(f"BAD {kind} {entity_id}: {exc}", err=True)
        for tmp in jsonio.stray_temp_files(bound.directory):
            click.echo(f"stray temp file: {tmp}", err=True)

    for label, reader in (("schema", store.read_schema), ("meta", store.read_meta)):
        try:
            reader()
        except EntityNotFoundError:
            click.echo(f"{label}: not present")
        except (StoreError, OSError) as exc:
            problems += 1
            click.echo(f"BAD {label}: {exc}", err=True)

    click.echo(f"Checked {checked} entities, {problems} problem(s)")
    if problems:
        raise SystemExit(1)


@cli.command()
@click.pass_context
def schema(ctx: click.Context) -> None:
    """Print the validated workspace schema."""
    try:
        s = _store(ctx).read_schema()
    except (StoreError, OSError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(jsonio.dumps(s), nl=False)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
