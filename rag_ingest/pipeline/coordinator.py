"""
Chunk processing coordinator.

Drives every chunk of a document through the context stage and then the
embedding stage, with a bounded number of chunk pipelines in flight.

Runs are resumable: before a stage is invoked the chunk's persisted state is
inspected, and stages whose effect is already recorded (contextualized text,
stored embedding) are skipped. A chunk that exhausts its retries is marked
``failed`` without affecting its siblings; the batch call itself only raises
for structural problems (unknown document or chunk, no chunks).
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence
import asyncio
import logging
import time

from rag_ingest.audit.logger import AuditLogger
from rag_ingest.chunking.text import estimate_token_count
from rag_ingest.errors import ConfigurationError, ValidationError
from rag_ingest.models import Chunk, ChunkStatus, Document, DocumentStatus, ProcessingStep
from rag_ingest.providers.base import AIProvider
from rag_ingest.resolver import ChunkContentResolver
from rag_ingest.store.base import ChunkStore
from .concurrency import ConcurrencyLimiter
from .retry import ErrorKind, RetryAttempt, RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)

MIN_PARALLEL = 1
MAX_PARALLEL = 20


@dataclass
class ProcessingOptions:
    max_parallel: int = 5
    skip_context: bool = False
    skip_embedding: bool = False
    verbose: bool = False

    def __post_init__(self):
        if not MIN_PARALLEL <= self.max_parallel <= MAX_PARALLEL:
            raise ConfigurationError(
                f"max_parallel must be between {MIN_PARALLEL} and {MAX_PARALLEL}, got {self.max_parallel}"
            )


@dataclass
class ChunkOutcome:
    """What happened to one chunk in a batch."""

    chunk_id: int
    chunk_index: int
    success: bool
    status: ChunkStatus
    context_generated: bool = False
    embedding_generated: bool = False
    context_tokens: int = 0
    embedding_tokens: int = 0
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    retries: List[RetryAttempt] = field(default_factory=list)


@dataclass
class BatchResult:
    results: List[ChunkOutcome]
    success_count: int
    failure_count: int
    context_success_count: int
    embedding_success_count: int
    context_tokens_used: int
    embedding_tokens_used: int
    total_processing_time_ms: float

    @property
    def total_tokens_used(self) -> int:
        return self.context_tokens_used + self.embedding_tokens_used

    @classmethod
    def from_outcomes(cls, outcomes: Sequence[ChunkOutcome], elapsed_ms: float) -> "BatchResult":
        return cls(
            results=list(outcomes),
            success_count=sum(1 for o in outcomes if o.success),
            failure_count=sum(1 for o in outcomes if not o.success),
            context_success_count=sum(1 for o in outcomes if o.context_generated),
            embedding_success_count=sum(1 for o in outcomes if o.embedding_generated),
            context_tokens_used=sum(o.context_tokens for o in outcomes),
            embedding_tokens_used=sum(o.embedding_tokens for o in outcomes),
            total_processing_time_ms=elapsed_ms,
        )


@dataclass
class _ChunkPlan:
    chunk: Chunk
    context_done: bool
    embedding_done: bool
    needs_context: bool
    needs_embedding: bool

    @property
    def has_work(self) -> bool:
        # Failed chunks are revisited even when their stages are all recorded,
        # so that their status can be recomputed.
        return self.needs_context or self.needs_embedding or self.chunk.status == ChunkStatus.FAILED


def derive_status(context_done: bool, embedding_done: bool) -> Optional[ChunkStatus]:
    """Chunk status implied by which stage effects are durably recorded."""
    if context_done and embedding_done:
        return ChunkStatus.COMPLETE
    if embedding_done:
        return ChunkStatus.EMBEDDED
    if context_done:
        return ChunkStatus.CONTEXTUALIZED
    return None


class ChunkProcessingCoordinator:
    """Bounded-parallel, resumable context + embedding pipeline."""

    def __init__(self, provider: AIProvider, store: ChunkStore,
                 resolver: Optional[ChunkContentResolver] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 audit_logger: Optional[AuditLogger] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        """
        Args:
            provider: Context and embedding generation
            store: Document/chunk/embedding persistence
            resolver: Chunk text resolution; a private resolver is created if omitted
            retry_policy: Per-stage attempt budget and backoff
            audit_logger: Optional JSON audit log for batch summaries and failures
            sleep: Inter-attempt sleep (injected in tests)
        """
        self.provider = provider
        self.store = store
        self.resolver = resolver or ChunkContentResolver()
        self.retry_policy = retry_policy or RetryPolicy()
        self.audit = audit_logger
        self._sleep = sleep

    async def process_document(self, document_id: int,
                               options: Optional[ProcessingOptions] = None) -> BatchResult:
        """Load a document and all its chunks from the store and process them."""
        document = await self.store.get_document(document_id)
        if document is None:
            raise ValidationError(f"Document with ID {document_id} not found")

        chunks = await self.store.get_chunks_by_document(document_id)
        return await self.process_chunks(document, chunks, options)

    async def process_chunks(self, document: Document, chunks: Sequence[Chunk],
                             options: Optional[ProcessingOptions] = None) -> BatchResult:
        """
        Process a document's chunks through the requested stages.

        Args:
            document: Document owning the chunks
            chunks: Chunks to process (their persisted state is re-read)
            options: Parallelism and stage skip flags

        Returns:
            BatchResult with one ChunkOutcome per chunk that needed work,
            in no particular order.

        Raises:
            ValidationError: Unknown document, no chunks, or a chunk that
                does not belong to the document
        """
        options = options or ProcessingOptions()
        log = logger.info if options.verbose else logger.debug
        start_time = time.monotonic()

        stored_document = await self.store.get_document(document.id)
        if stored_document is None:
            raise ValidationError(f"Document with ID {document.id} not found")
        if not chunks:
            raise ValidationError(f"No chunks found for document {document.id}")

        persisted = {c.id: c for c in await self.store.get_chunks_by_document(document.id)}
        current: List[Chunk] = []
        for chunk in chunks:
            if chunk.id not in persisted:
                raise ValidationError(f"Chunk {chunk.id} does not belong to document {document.id}")
            current.append(persisted[chunk.id])

        log("Processing %s: %d chunks, max parallel %d, skip context=%s, skip embedding=%s",
            stored_document.filename, len(current), options.max_parallel,
            options.skip_context, options.skip_embedding)

        if options.skip_context and options.skip_embedding:
            log("Both stages skipped; nothing to do")
            return BatchResult.from_outcomes([], self._elapsed_ms(start_time))

        plans = []
        for chunk in current:
            plan = await self._plan(chunk, options)
            if plan.has_work:
                plans.append(plan)

        log("Chunks needing processing: %d", len(plans))

        limiter = ConcurrencyLimiter(options.max_parallel)
        outcomes = await asyncio.gather(*(
            self._run_pipeline(limiter, stored_document, plan, options) for plan in plans
        ))

        await self._update_document_status(stored_document, outcomes)
        await self.store.flush()

        result = BatchResult.from_outcomes(outcomes, self._elapsed_ms(start_time))
        log("Finished %s in %.0fms: %d succeeded, %d failed, %d contexts, %d embeddings, %d tokens",
            stored_document.filename, result.total_processing_time_ms, result.success_count,
            result.failure_count, result.context_success_count, result.embedding_success_count,
            result.total_tokens_used)

        if self.audit:
            self.audit.log_chunk_batch(
                source_path=stored_document.filepath,
                document_id=stored_document.id,
                success_count=result.success_count,
                failure_count=result.failure_count,
                context_tokens=result.context_tokens_used,
                embedding_tokens=result.embedding_tokens_used,
                processing_time_ms=result.total_processing_time_ms,
            )
        return result

    async def get_processing_stats(self, document_id: int) -> Dict[str, int]:
        """Per-status chunk counts and overall progress for a document."""
        chunks = await self.store.get_chunks_by_document(document_id)
        counts = {status: 0 for status in ChunkStatus}
        for chunk in chunks:
            counts[chunk.status] += 1

        total = len(chunks)
        processed = (counts[ChunkStatus.CONTEXTUALIZED] + counts[ChunkStatus.EMBEDDED]
                     + counts[ChunkStatus.COMPLETE])
        return {
            "total_chunks": total,
            "pending_chunks": counts[ChunkStatus.PENDING],
            "contextualized_chunks": counts[ChunkStatus.CONTEXTUALIZED],
            "embedded_chunks": counts[ChunkStatus.EMBEDDED],
            "complete_chunks": counts[ChunkStatus.COMPLETE],
            "failed_chunks": counts[ChunkStatus.FAILED],
            "progress_percentage": round(processed / total * 100) if total else 0,
        }

    async def _plan(self, chunk: Chunk, options: ProcessingOptions) -> _ChunkPlan:
        context_done = (chunk.contextualized_text is not None
                        or chunk.status in (ChunkStatus.CONTEXTUALIZED, ChunkStatus.COMPLETE))
        embedding_done = await self.store.get_embedding_by_chunk(chunk.id) is not None
        return _ChunkPlan(
            chunk=chunk,
            context_done=context_done,
            embedding_done=embedding_done,
            needs_context=not options.skip_context and not context_done,
            needs_embedding=not options.skip_embedding and not embedding_done,
        )

    async def _run_pipeline(self, limiter: ConcurrencyLimiter, document: Document,
                            plan: _ChunkPlan, options: ProcessingOptions) -> ChunkOutcome:
        async with limiter:
            return await self._process_chunk(document, plan, options)

    async def _process_chunk(self, document: Document, plan: _ChunkPlan,
                             options: ProcessingOptions) -> ChunkOutcome:
        log = logger.info if options.verbose else logger.debug
        chunk = plan.chunk
        outcome = ChunkOutcome(chunk_id=chunk.id, chunk_index=chunk.chunk_index,
                               success=False, status=chunk.status)
        context_done, embedding_done = plan.context_done, plan.embedding_done

        def on_retry(attempt: RetryAttempt) -> None:
            outcome.retries.append(attempt)
            log("  %s attempt %d/%d failed (%s); retrying in %.2fs: %s",
                attempt.label, attempt.attempt, attempt.max_attempts,
                attempt.kind.value, attempt.delay, attempt.error)

        log("Chunk %d [%d-%d] status=%s: context=%s embedding=%s",
            chunk.chunk_index, chunk.start_position, chunk.end_position, chunk.status.value,
            "run" if plan.needs_context else "skip", "run" if plan.needs_embedding else "skip")

        try:
            status = chunk.status
            if plan.needs_context or plan.needs_embedding:
                chunk_text = self.resolver.get_chunk_text(document, chunk)

            if plan.needs_context:
                document_text = self.resolver.get_document_content(document)
                context = await run_with_retry(
                    lambda: self.provider.generate_context(document_text, chunk_text),
                    self.retry_policy,
                    label=f"context[chunk {chunk.chunk_index}]",
                    on_retry=on_retry,
                    sleep=self._sleep,
                )
                context_done = True
                status = derive_status(context_done, embedding_done)
                await self.store.update_chunk(chunk.id, {
                    "status": status,
                    "contextualized_text": context,
                    "processing_step": ProcessingStep.CONTEXT_GENERATION,
                    "error_message": None,
                })
                outcome.context_generated = True
                outcome.context_tokens = (estimate_token_count(document_text)
                                          + estimate_token_count(chunk_text)
                                          + estimate_token_count(context))

            if plan.needs_embedding:
                embedding = await run_with_retry(
                    lambda: self.provider.generate_embedding(chunk_text),
                    self.retry_policy,
                    label=f"embedding[chunk {chunk.chunk_index}]",
                    on_retry=on_retry,
                    sleep=self._sleep,
                )
                await self.store.insert_embedding(chunk.id, embedding, self.provider.embedding_model)
                embedding_done = True
                status = derive_status(context_done, embedding_done)
                await self.store.update_chunk(chunk.id, {
                    "status": status,
                    "processing_step": ProcessingStep.EMBEDDING,
                    "error_message": None,
                })
                outcome.embedding_generated = True
                outcome.embedding_tokens = estimate_token_count(chunk_text)

            if not (plan.needs_context or plan.needs_embedding):
                recovered = derive_status(context_done, embedding_done)
                if recovered is not None:
                    status = recovered
                    await self.store.update_chunk(chunk.id, {"status": status, "error_message": None})

            outcome.success = status != ChunkStatus.FAILED
            outcome.status = status
            if not outcome.success:
                outcome.error = chunk.error_message or "No recorded stage to recover from"
            log("Chunk %d finished with status %s", chunk.chunk_index, status.value)

        except Exception as e:
            outcome.error = str(e)
            outcome.error_kind = self.retry_policy.classifier(e)
            outcome.status = ChunkStatus.FAILED
            logger.warning("Chunk %d of %s failed (%s): %s",
                           chunk.chunk_index, document.filename, outcome.error_kind.value, e)
            await self._mark_failed(document, chunk, outcome)

        return outcome

    async def _mark_failed(self, document: Document, chunk: Chunk, outcome: ChunkOutcome) -> None:
        try:
            await self.store.update_chunk(chunk.id, {
                "status": ChunkStatus.FAILED,
                "error_message": outcome.error,
            })
        except Exception as e:
            logger.error("Could not record failure of chunk %d: %s", chunk.id, e)

        if self.audit:
            self.audit.log_chunk_failure(
                source_path=document.filepath,
                chunk_index=chunk.chunk_index,
                error_kind=outcome.error_kind.value if outcome.error_kind else "unknown",
                message=outcome.error or "",
                attempts=len(outcome.retries) + 1,
            )

    async def _update_document_status(self, document: Document,
                                       outcomes: Sequence[ChunkOutcome]) -> None:
        """
        Recompute the document's aggregate status from its chunks.

        The document is only ``complete`` when every chunk is ``complete``.
        """
        integrity_failures = [o for o in outcomes if o.error_kind == ErrorKind.INTEGRITY]
        chunks = await self.store.get_chunks_by_document(document.id)
        total = len(chunks)
        complete = sum(1 for c in chunks if c.status == ChunkStatus.COMPLETE)
        failed = sum(1 for c in chunks if c.status == ChunkStatus.FAILED)

        if integrity_failures:
            status, last_error = DocumentStatus.FILE_MISSING, integrity_failures[0].error
            if self.audit:
                self.audit.log_integrity_violation(document.filepath, last_error or "")
        elif total and complete == total:
            status, last_error = DocumentStatus.COMPLETE, None
        elif total and failed == total:
            status, last_error = DocumentStatus.FAILED, f"All {total} chunks failed"
        else:
            status = DocumentStatus.PROCESSING
            last_error = f"{failed} of {total} chunks failed" if failed else None

        await self.store.update_document(document.id, {
            "status": status,
            "processed_chunks": complete,
            "last_error": last_error,
        })

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return (time.monotonic() - start_time) * 1000
