import asyncio
import json
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from tooldex.config import Config, get_config
from tooldex.dedup import DedupStrategy
from tooldex.embedder import Embedder
from tooldex.engine import SearchEngine
from tooldex.errors import ToolDexError
from tooldex.indexing import PartitionIndexer
from tooldex.logging import configure_logging
from tooldex.registry import PartitionRegistry
from tooldex.search import FusedResult
from tooldex.stores import Document, SqliteStore
from tooldex.utils import clip
from tooldex.validation import HealthStatus

console = Console()

_STATUS_STYLE = {
    HealthStatus.HEALTHY: "green",
    HealthStatus.WARNING: "yellow",
    HealthStatus.ERROR: "red",
}


def _require_config(ctx) -> Config:
    if "config_error" in ctx.obj:
        console.print(f"[red]Error:[/red] {escape(ctx.obj['config_error'])}")
        raise SystemExit(1)
    return ctx.obj["config"]


def _open_store(config: Config) -> SqliteStore:
    return SqliteStore(config.db_path, config.embedding.dim)


@click.group(invoke_without_command=True)
@click.pass_context
def main(ctx):
    """tooldex - multi-partition tool discovery search"""
    ctx.ensure_object(dict)
    try:
        config = get_config()
        ctx.obj["config"] = config
        configure_logging(config.log_level)
    except ValueError as e:
        # Only fail if we're running a command that needs config
        ctx.obj["config_error"] = str(e)

    if ctx.invoked_subcommand is None:
        console.print("[bold]tooldex[/bold] - multi-partition tool discovery search\n")
        console.print("Run [cyan]tooldex index FILE.json[/cyan] to build the index.")
        console.print("\nUse [cyan]tooldex --help[/cyan] for all commands.")


@main.command()
@click.pass_context
def status(ctx):
    """Show configuration, partitions and index size."""
    config = _require_config(ctx)
    registry = PartitionRegistry()
    summary = registry.summary()

    console.print("[bold]tooldex status[/bold]")
    console.print()
    console.print(f"Database: [cyan]{config.db_path}[/cyan]")
    console.print(f"Embedding model: {config.embedding_model} ({config.embedding.dim} dims)")
    console.print(
        f"Partitions: {summary['enabled_partitions']}/{summary['total_partitions']} enabled, "
        f"{summary['total_vector_types']} vector types"
    )

    if not config.db_path.exists():
        console.print("[dim]No index yet[/dim]")
        return

    documents, stats = asyncio.run(_read_stats(config))
    console.print(f"Documents: {documents}")

    table = Table(title="Vectors")
    table.add_column("Partition")
    table.add_column("Vector type")
    table.add_column("Points", justify="right")
    for partition in registry.enabled_partitions():
        vector_type = registry.primary_vector_type(partition.name)
        table.add_row(partition.name, vector_type, str(stats.get(vector_type, 0)))
    console.print(table)


async def _read_stats(config: Config) -> tuple[int, dict[str, int]]:
    async with _open_store(config) as store:
        return await store.count(), await store.get_stats()


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-p", "--partition", "partitions", multiple=True, help="Only index these partitions")
@click.pass_context
def index(ctx, path: Path, partitions: tuple[str, ...]):
    """Load tool documents from a JSON file and index them."""
    config = _require_config(ctx)
    try:
        raw = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        console.print(f"[red]Error:[/red] {path} is not valid JSON: {e}")
        raise SystemExit(1) from e

    if not isinstance(raw, list):
        console.print("[red]Error:[/red] expected a JSON array of documents")
        raise SystemExit(1)

    documents = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict) or "id" not in item:
            console.print(f"[red]Error:[/red] document #{i} has no 'id'")
            raise SystemExit(1)
        fields = {k: v for k, v in item.items() if k != "id"}
        documents.append(Document(id=str(item["id"]), fields=fields))

    try:
        stats = asyncio.run(_index(config, documents, list(partitions) or None))
    except ToolDexError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise SystemExit(1) from e
    console.print(
        f"[green]Indexed[/green] {stats.indexed} vectors "
        f"({stats.skipped} skipped, {stats.failed} failed) from {len(documents)} documents"
    )
    if stats.failed:
        raise SystemExit(1)


async def _index(config: Config, documents: list[Document], partitions: list[str] | None):
    registry = PartitionRegistry()
    async with _open_store(config) as store:
        await store.put_documents(documents)
        indexer = PartitionIndexer(registry, Embedder(config.embedding), store)

        def progress(partition: str, done: int, total: int) -> None:
            console.print(f"[dim]{partition}: {done}/{total}[/dim]")

        return await indexer.index_all(documents, partitions, progress)


@main.command()
@click.argument("query")
@click.option("-p", "--partition", "partitions", multiple=True, help="Search only these partitions")
@click.option("-t", "--vector-type", "vector_types", multiple=True, help="Vector type hints")
@click.option("-k", "--top-k", type=int, default=None, help="Results per partition")
@click.option(
    "--strategy",
    type=click.Choice([s.value for s in DedupStrategy]),
    default=None,
    help="Deduplication strategy",
)
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON")
@click.pass_context
def search(
    ctx,
    query: str,
    partitions: tuple[str, ...],
    vector_types: tuple[str, ...],
    top_k: int | None,
    strategy: str | None,
    as_json: bool,
):
    """Search the index."""
    config = _require_config(ctx)
    if not config.db_path.exists():
        console.print("[red]Error:[/red] no index found, run [cyan]tooldex index[/cyan] first")
        raise SystemExit(1)

    options = {"top_k": top_k} if top_k else None
    dedup = {"strategy": strategy} if strategy else None
    try:
        response = asyncio.run(_search(config, query, list(partitions), list(vector_types), options, dedup))
    except ToolDexError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise SystemExit(1) from e

    if as_json:
        click.echo(
            json.dumps(
                {
                    "routing": {
                        "partitions": list(response.routing.selected_partitions),
                        "method": str(response.routing.method),
                        "confidence": response.routing.confidence,
                        "fallback_used": response.routing.fallback_used,
                    },
                    "errors": response.errors,
                    "duplicates_removed": response.duplicates_removed,
                    "results": [
                        {
                            "id": r.id,
                            "score": r.weighted_score if isinstance(r, FusedResult) else r.score,
                            "name": r.payload.get("name"),
                        }
                        for r in response.results
                    ],
                },
                indent=2,
            )
        )
        return

    routing = response.routing
    console.print(
        f"[dim]{routing.method} routing to {', '.join(routing.selected_partitions)} "
        f"(confidence {routing.confidence:.2f})[/dim]"
    )
    for source, error in response.errors.items():
        console.print(f"[yellow]{source}:[/yellow] {error}")

    if not response.results:
        console.print("No results")
        return

    table = Table()
    table.add_column("#", justify="right")
    table.add_column("Tool")
    table.add_column("Score", justify="right")
    table.add_column("Sources")
    table.add_column("Description")
    for i, result in enumerate(response.results, start=1):
        score = result.weighted_score if isinstance(result, FusedResult) else result.score
        sources = ", ".join(s.vector_type for s in result.sources) if isinstance(result, FusedResult) else ""
        table.add_row(
            str(i),
            str(result.payload.get("name", result.id)),
            f"{score:.4f}",
            sources,
            clip(str(result.payload.get("description", "")), 60),
        )
    console.print(table)
    console.print(f"[dim]{response.duplicates_removed} duplicates removed in {response.total_latency_ms} ms[/dim]")


async def _search(config: Config, query, partitions, vector_types, options, dedup):
    async with _open_store(config) as store:
        engine = SearchEngine.from_config(config, store, embedder=Embedder(config.embedding))
        return await engine.run(
            query,
            partitions=partitions or None,
            vector_types=vector_types or None,
            options=options,
            deduplication=dedup,
        )


@main.command()
@click.pass_context
def validate(ctx):
    """Check the vector index against the document store."""
    config = _require_config(ctx)
    report = asyncio.run(_validate(config))

    table = Table(title="Index health")
    table.add_column("Partition")
    table.add_column("Vectors", justify="right")
    table.add_column("Expected", justify="right")
    table.add_column("Sync", justify="right")
    table.add_column("Status")
    for health in report.partitions.values():
        style = _STATUS_STYLE[health.status]
        table.add_row(
            health.name,
            str(health.vector_count),
            str(health.expected_count),
            f"{health.sync_percentage:.1f}%",
            f"[{style}]{health.status}[/{style}]",
        )
    console.print(table)

    sample = "passed" if report.sample_validation_passed else "[red]failed[/red]"
    console.print(f"Sample validation: {sample}")
    for recommendation in report.recommendations:
        console.print(f"  - {recommendation}")

    if report.status == HealthStatus.ERROR:
        raise SystemExit(1)


async def _validate(config: Config):
    async with _open_store(config) as store:
        engine = SearchEngine.from_config(config, store, embedder=Embedder(config.embedding))
        return await engine.validate_consistency()


if __name__ == "__main__":
    main()
