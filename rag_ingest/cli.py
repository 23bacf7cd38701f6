"""
Command line front end: add, resume, verify, stats.

Example:
    rag-ingest add ./papers/report.md --strategy paragraph --max-parallel 8
    rag-ingest resume 3 --skip-context
    rag-ingest verify --repair
"""

import asyncio
import json
import logging
import sys

import click

from rag_ingest.audit.logger import get_audit_logger
from rag_ingest.config import IngestConfig, load_config
from rag_ingest.documents import DocumentService
from rag_ingest.errors import ConfigurationError, RagIngestError
from rag_ingest.integrity import FileIntegrityService
from rag_ingest.loader import DocumentLoader
from rag_ingest.pipeline import BatchResult, ChunkProcessingCoordinator, ProcessingOptions, policy_from_config
from rag_ingest.providers import get_provider
from rag_ingest.resolver import ChunkContentResolver
from rag_ingest.store import get_store


def _setup_logging(cfg: IngestConfig, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, cfg.get_log_level(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _build_coordinator(cfg: IngestConfig, store, skip_context: bool) -> ChunkProcessingCoordinator:
    loader = DocumentLoader()
    return ChunkProcessingCoordinator(
        provider=get_provider(cfg.data, load_context_model=not skip_context),
        store=store,
        resolver=ChunkContentResolver(max_cache_size=cfg.get('resolver.cache_size', 10), loader=loader),
        retry_policy=policy_from_config(cfg.get_processing_config()),
        audit_logger=get_audit_logger(cfg.get_audit_config()),
    )


def _resolve_skip_context(cfg: IngestConfig, skip_context: bool) -> bool:
    if not skip_context and not cfg.get('llm.model_path'):
        click.echo(click.style("⚠ No llm.model_path configured; skipping context generation", fg="yellow"))
        return True
    return skip_context


def _print_batch(result: BatchResult) -> None:
    click.echo()
    click.echo(click.style("=" * 60, fg="cyan"))
    click.echo(click.style("Processing Summary", fg="cyan", bold=True))
    click.echo(click.style("=" * 60, fg="cyan"))
    click.echo(f"Chunks processed:   {len(result.results)}")
    click.echo(f"Succeeded:          {result.success_count}")
    click.echo(f"Failed:             {result.failure_count}")
    click.echo(f"Contexts generated: {result.context_success_count}")
    click.echo(f"Embeddings stored:  {result.embedding_success_count}")
    click.echo(f"Tokens (est.):      {result.total_tokens_used} "
               f"(context {result.context_tokens_used}, embedding {result.embedding_tokens_used})")
    click.echo(f"Time:               {result.total_processing_time_ms:.0f}ms")
    click.echo(click.style("=" * 60, fg="cyan"))

    failed = sorted((o for o in result.results if not o.success), key=lambda o: o.chunk_index)
    for outcome in failed:
        kind = outcome.error_kind.value if outcome.error_kind else "unknown"
        click.echo(click.style(f"✗ Chunk {outcome.chunk_index} [{kind}]: {outcome.error}", fg="red"))
        for attempt in outcome.retries:
            click.echo(f"    attempt {attempt.attempt}/{attempt.max_attempts} "
                       f"{attempt.kind.value}, retried after {attempt.delay:.2f}s")


def _fail(message: str) -> None:
    click.echo(click.style(f"✗ {message}", fg="red"), err=True)
    sys.exit(1)


@click.group()
@click.version_option()
def cli():
    """RAG ingestion pipeline - segment, contextualize and embed documents."""
    pass


@cli.command()
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--config', type=click.Path(exists=True), help='Config file path')
@click.option('--strategy', type=click.Choice(['character', 'sentence', 'paragraph']),
              help='Chunking strategy (default from config)')
@click.option('--chunk-size', type=int, help='Target chunk size in characters')
@click.option('--overlap', type=int, help='Overlap between chunks in characters')
@click.option('--max-parallel', type=click.IntRange(1, 20), help='Chunks processed concurrently (1-20)')
@click.option('--skip-context', is_flag=True, help='Skip context generation')
@click.option('--skip-embedding', is_flag=True, help='Skip embedding generation')
@click.option('--dry-run', is_flag=True, help='Show the chunk analysis without storing anything')
@click.option('--verbose', '-v', is_flag=True, help='Log per-chunk and per-retry diagnostics')
def add(path, config, strategy, chunk_size, overlap, max_parallel, skip_context,
        skip_embedding, dry_run, verbose):
    """Ingest a document and process its chunks."""
    try:
        cfg = load_config(config)
        _setup_logging(cfg, verbose)

        chunking = {k: v for k, v in (('strategy', strategy), ('chunk_size', chunk_size),
                                      ('overlap', overlap)) if v is not None}
        store = get_store({'backend': 'memory'} if dry_run else cfg.get_store_config())
        service = DocumentService(store, chunking={**cfg.get_chunking_config(), **chunking},
                                  audit_logger=None if dry_run else get_audit_logger(cfg.get_audit_config()))

        if dry_run:
            preview = service.preview(path)
            click.echo(click.style(f"[Dry run: {preview.document.filename}]", fg="blue", bold=True))
            click.echo(json.dumps({'metadata': preview.metadata, 'analysis': preview.analysis}, indent=2))
            return

        click.echo(click.style(f"[Ingesting {path}...]", fg="blue"))
        ingested = asyncio.run(service.process_document_from_file(path))
        document = ingested.document
        if ingested.reused:
            click.echo(click.style(f"✓ Already indexed as document {document.id}; resuming", fg="green"))
        else:
            click.echo(click.style(f"✓ Document {document.id}: {len(ingested.chunks)} chunks "
                                   f"(avg {ingested.analysis['avg_chunk_size']:.0f} chars)", fg="green"))

        skip_context = _resolve_skip_context(cfg, skip_context)
        options = ProcessingOptions(
            max_parallel=max_parallel or cfg.get('processing.max_parallel_chunks', 5),
            skip_context=skip_context,
            skip_embedding=skip_embedding,
            verbose=verbose,
        )
        coordinator = _build_coordinator(cfg, store, skip_context)
        result = asyncio.run(coordinator.process_chunks(document, ingested.chunks, options))
        _print_batch(result)
        if result.failure_count:
            sys.exit(1)

    except ConfigurationError as e:
        _fail(f"Config error: {e}")
    except RagIngestError as e:
        _fail(f"{e.code}: {e}")


@cli.command()
@click.argument('document_id', type=int)
@click.option('--config', type=click.Path(exists=True), help='Config file path')
@click.option('--max-parallel', type=click.IntRange(1, 20), help='Chunks processed concurrently (1-20)')
@click.option('--skip-context', is_flag=True, help='Skip context generation')
@click.option('--skip-embedding', is_flag=True, help='Skip embedding generation')
@click.option('--verbose', '-v', is_flag=True, help='Log per-chunk and per-retry diagnostics')
def resume(document_id, config, max_parallel, skip_context, skip_embedding, verbose):
    """Continue processing a partially processed document."""
    try:
        cfg = load_config(config)
        _setup_logging(cfg, verbose)
        store = get_store(cfg.get_store_config())

        skip_context = _resolve_skip_context(cfg, skip_context)
        options = ProcessingOptions(
            max_parallel=max_parallel or cfg.get('processing.max_parallel_chunks', 5),
            skip_context=skip_context,
            skip_embedding=skip_embedding,
            verbose=verbose,
        )
        coordinator = _build_coordinator(cfg, store, skip_context)
        result = asyncio.run(coordinator.process_document(document_id, options))
        _print_batch(result)
        if result.failure_count:
            sys.exit(1)

    except ConfigurationError as e:
        _fail(f"Config error: {e}")
    except RagIngestError as e:
        _fail(f"{e.code}: {e}")


@cli.command()
@click.option('--config', type=click.Path(exists=True), help='Config file path')
@click.option('--repair', is_flag=True, help='Refresh fingerprints of modified files')
def verify(config, repair):
    """Check indexed documents against their source files."""
    try:
        cfg = load_config(config)
        _setup_logging(cfg, False)
        service = FileIntegrityService(get_store(cfg.get_store_config()),
                                       audit_logger=get_audit_logger(cfg.get_audit_config()))

        async def run():
            results = await service.check_all_documents()
            for result in results:
                await service.update_document_status(result.document, result)
                if result.valid:
                    click.echo(click.style(f"✓ {result.document.id} {result.document.filepath}", fg="green"))
                    continue
                click.echo(click.style(f"✗ {result.document.id} {result.document.filepath}: {result.reason}",
                                       fg="red"))
                if repair:
                    repaired = await service.repair_document(result.document)
                    color = "green" if repaired.success else "yellow"
                    click.echo(click.style(f"    {repaired.reason or 'repaired'}", fg=color))
            return service.summarize(results)

        summary = asyncio.run(run())
        click.echo(f"\nChecked {summary['checked']} document(s), {len(summary['invalid'])} with issues")

    except ConfigurationError as e:
        _fail(f"Config error: {e}")
    except RagIngestError as e:
        _fail(f"{e.code}: {e}")


@cli.command()
@click.argument('document_id', type=int)
@click.option('--config', type=click.Path(exists=True), help='Config file path')
def stats(document_id, config):
    """Show chunk processing progress for a document."""
    try:
        cfg = load_config(config)
        store = get_store(cfg.get_store_config())

        async def run():
            document = await store.get_document(document_id)
            if document is None:
                return None, None
            coordinator = ChunkProcessingCoordinator(provider=None, store=store)
            return document, await coordinator.get_processing_stats(document_id)

        document, progress = asyncio.run(run())
        if document is None:
            _fail(f"Document with ID {document_id} not found")

        click.echo(click.style(f"{document.filename} [{document.status.value}]", fg="cyan", bold=True))
        if document.last_error:
            click.echo(click.style(f"Last error: {document.last_error}", fg="yellow"))
        for key, value in progress.items():
            click.echo(f"  {key.replace('_', ' '):<24}{value}")

    except ConfigurationError as e:
        _fail(f"Config error: {e}")
    except RagIngestError as e:
        _fail(f"{e.code}: {e}")


if __name__ == '__main__':
    cli()
