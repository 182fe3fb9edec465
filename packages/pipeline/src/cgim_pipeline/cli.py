"""
cli.py — Click CLI entrypoint for the CGIM analytics engine.

Results go to stdout (JSON by default, CSV with --format csv); logs go to
stderr.

Usage:
    cgim entities
    cgim tree ABAL --year 2024 --flow export --depth 2
    cgim merged ABAL --year 2024 --format csv > abal_2024.csv
    cgim series ABAL --from 2020 --to 2024 --category "Alumínio primário"
    cgim cache-clear --prefix cgim:basket:annual
    cgim cache-clear --expired
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Coroutine, Sequence
from dataclasses import asdict
from typing import Any

import click
import polars as pl

from cgim_shared.config import settings
from cgim_shared.constants import FLOWS
from cgim_shared.errors import CgimError
from cgim_shared.models.hierarchy import MergedNode
from cgim_pipeline.pipelines.analytics import AnalyticsSession
from cgim_pipeline.sources.comexstat import ComexStatSource
from cgim_pipeline.sources.dictionary import CsvDictionarySource
from cgim_pipeline.transforms.hierarchy import compute_total, tree_to_frame
from cgim_pipeline.utils.cache import FileCacheStore
from cgim_pipeline.utils.logging import configure_logging

_FORMATS = click.Choice(["json", "csv"], case_sensitive=False)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    try:
        return asyncio.run(coro)
    except CgimError as exc:
        raise click.ClickException(str(exc)) from exc


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


def _merged_frame(nodes: Sequence[MergedNode]) -> pl.DataFrame:
    rows: list[dict[str, Any]] = []

    def walk(items: Sequence[MergedNode], depth: int) -> None:
        for n in items:
            rows.append(
                {
                    "id": n.id,
                    "level": n.level,
                    "depth": depth,
                    "name": n.name,
                    "import_value": n.primary.value,
                    "import_weight": n.primary.weight,
                    "import_unit_price": n.primary.unit_price,
                    "export_value": n.secondary.value,
                    "export_weight": n.secondary.weight,
                    "export_unit_price": n.secondary.unit_price,
                }
            )
            walk(n.children, depth + 1)

    walk(nodes, 0)
    return pl.DataFrame(rows)


async def _with_session(dictionary: str | None, use_cache: bool, fn: Any) -> Any:
    cache = FileCacheStore(settings.cache_path)
    async with ComexStatSource() as client:
        session = AnalyticsSession(
            CsvDictionarySource(dictionary), client, cache=cache, use_cache=use_cache
        )
        return await fn(session)


def _common_options(fn: Any) -> Any:
    fn = click.option(
        "--dictionary", "dictionary", default=None, type=click.Path(dir_okay=False),
        help="Dictionary CSV (default: settings.dictionary_path)",
    )(fn)
    fn = click.option("--no-cache", is_flag=True, help="Bypass the ComexStat cache")(fn)
    fn = click.option("--format", "fmt", type=_FORMATS, default="json", show_default=True)(fn)
    return fn


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@click.group()
@click.option(
    "--log-level",
    default=settings.log_level,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level",
)
@click.option(
    "--log-format",
    default=settings.log_format,
    type=click.Choice(["json", "console"]),
    help="Log renderer",
)
def main(log_level: str, log_format: str) -> None:
    """CGIM trade analytics over ComexStat."""
    configure_logging(log_level=log_level.upper(), log_format=log_format)


@main.command()
@click.option("--dictionary", default=None, type=click.Path(dir_okay=False))
def entities(dictionary: str | None) -> None:
    """List the entities available in the dictionary."""
    names = _run(CsvDictionarySource(dictionary).entities())
    for name in names:
        click.echo(name)


@main.command()
@click.argument("entity")
@click.option("--year", type=int, required=True)
@click.option("--flow", type=click.Choice(FLOWS), default="import", show_default=True)
@click.option("--depth", type=click.IntRange(1, 10), default=1, show_default=True)
@_common_options
def tree(
    entity: str, year: int, flow: str, depth: int,
    dictionary: str | None, no_cache: bool, fmt: str,
) -> None:
    """Category → subcategory → NCM tree for one entity/year/flow."""
    result = _run(
        _with_session(dictionary, not no_cache, lambda s: s.load_tree(entity, year, flow, depth))
    )
    if fmt == "csv":
        click.echo(tree_to_frame(result.tree).write_csv(), nl=False)
        return
    total = compute_total(result.tree)
    _echo_json(
        {
            "entity": entity,
            "year": year,
            "flow": flow,
            "total": {"value": total.value, "weight": total.weight, "unit_price": total.unit_price},
            "diagnostics": asdict(result.diagnostics),
            "tree": [node.model_dump() for node in result.tree],
        }
    )


@main.command()
@click.argument("entity")
@click.option("--year", type=int, required=True)
@click.option("--depth", type=click.IntRange(1, 10), default=1, show_default=True)
@_common_options
def merged(
    entity: str, year: int, depth: int,
    dictionary: str | None, no_cache: bool, fmt: str,
) -> None:
    """Import tree with export metrics attached by node id."""
    result = _run(
        _with_session(dictionary, not no_cache, lambda s: s.load_dual_flow(entity, year, depth))
    )
    if fmt == "csv":
        click.echo(_merged_frame(result.merged).write_csv(), nl=False)
        return
    _echo_json(
        {
            "entity": entity,
            "year": year,
            "diagnostics": asdict(result.diagnostics),
            "merged": [node.model_dump() for node in result.merged],
        }
    )


@main.command()
@click.argument("entity")
@click.option("--from", "year_start", type=int, required=True)
@click.option("--to", "year_end", type=int, required=True)
@click.option("--category", "categories", multiple=True, help="Repeatable; default all")
@click.option("--subcategory", "subcategories", multiple=True, help="Repeatable; default all")
@click.option("--depth", type=click.IntRange(1, 10), default=1, show_default=True)
@_common_options
def series(
    entity: str, year_start: int, year_end: int,
    categories: tuple[str, ...], subcategories: tuple[str, ...], depth: int,
    dictionary: str | None, no_cache: bool, fmt: str,
) -> None:
    """Annual import/export series and trade balance of a basket."""
    result = _run(
        _with_session(
            dictionary,
            not no_cache,
            lambda s: s.load_annual(entity, year_start, year_end, categories, subcategories, depth),
        )
    )
    if fmt == "csv":
        frame = pl.DataFrame([p.model_dump() for p in result.balance])
        click.echo(frame.write_csv(), nl=False)
        return
    _echo_json(
        {
            "entity": entity,
            "codes": len(result.codes),
            "import": [p.model_dump() for p in result.import_points],
            "export": [p.model_dump() for p in result.export_points],
            "balance": [p.model_dump() for p in result.balance],
        }
    )


@main.command("cache-clear")
@click.option("--prefix", default=None, help="Only remove keys starting with this prefix")
@click.option("--expired", is_flag=True, help="Only remove entries older than the longest TTL")
def cache_clear(prefix: str | None, expired: bool) -> None:
    """Remove cached ComexStat results."""
    store = FileCacheStore(settings.cache_path)
    removed = store.prune() if expired else store.clear(prefix)
    click.echo(f"Removed {removed} cache entries from {settings.cache_path}")


if __name__ == "__main__":
    main()
