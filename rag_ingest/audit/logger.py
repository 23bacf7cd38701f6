"""
Audit logging for ingestion runs.

Each event is one JSON object per line in an append-only file. Chunk text and
generated context are never written to the audit log, only counts and errors.
"""

import logging
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional


class AuditLogger:
    """
    Structured audit logger.

    Features:
    - JSON event logging
    - Batch summaries (success/failure counts, tokens per stage, wall time)
    - Per-chunk failure and integrity violation records
    - Append-only log file
    """

    def __init__(self, log_file: str = "./audit.log", level: str = "INFO"):
        """
        Initialize audit logger.

        Args:
            log_file: Path to audit log
            level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        self.log_file = Path(log_file)
        self.log_file.parent.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger("rag_ingest_audit")
        self.logger.setLevel(getattr(logging, level.upper()))
        # Audit events only go to the audit file, never to the console
        self.logger.propagate = False

        fh = logging.FileHandler(self.log_file, mode='a', encoding='utf-8')
        fh.setLevel(getattr(logging, level.upper()))
        fh.setFormatter(logging.Formatter('%(message)s'))

        # Remove existing handlers to avoid duplicates
        self.close()
        self.logger.addHandler(fh)

    def close(self):
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)

    def _log_event(self, event_dict: Dict[str, Any]):
        event_dict['timestamp'] = datetime.now(timezone.utc).isoformat()
        self.logger.info(json.dumps(event_dict, default=str))

    def log_document_ingestion(self, source_path: str, doc_type: str,
                               num_chunks: int, **kwargs):
        """
        Log document ingestion event.

        Args:
            source_path: Path to ingested document
            doc_type: Document type (text, markdown, pdf, docx)
            num_chunks: Number of chunks created
            **kwargs: Additional metadata
        """
        event = {
            "event": "document_ingestion",
            "source_path": source_path,
            "doc_type": doc_type,
            "num_chunks": num_chunks,
            **kwargs
        }
        self._log_event(event)

    def log_chunk_batch(self, source_path: str, document_id: int, success_count: int,
                        failure_count: int, context_tokens: int, embedding_tokens: int,
                        processing_time_ms: float, **kwargs):
        """Log the summary of one coordinator batch."""
        event = {
            "event": "chunk_batch",
            "source_path": source_path,
            "document_id": document_id,
            "success_count": success_count,
            "failure_count": failure_count,
            "context_tokens": context_tokens,
            "embedding_tokens": embedding_tokens,
            "processing_time_ms": round(processing_time_ms, 2),
            **kwargs
        }
        self._log_event(event)

    def log_chunk_failure(self, source_path: str, chunk_index: int, error_kind: str,
                          message: str, attempts: int, **kwargs):
        event = {
            "event": "chunk_failure",
            "source_path": source_path,
            "chunk_index": chunk_index,
            "error_kind": error_kind,
            "message": message[:500],
            "attempts": attempts,
            **kwargs
        }
        self._log_event(event)

    def log_integrity_violation(self, source_path: str, reason: str, **kwargs):
        """
        Log a source file that no longer matches its indexed fingerprint.

        Args:
            source_path: Path of the indexed file
            reason: Why the integrity check failed
        """
        event = {
            "event": "integrity_violation",
            "source_path": source_path,
            "reason": reason,
            **kwargs
        }
        self._log_event(event)

    def log_error(self, error_type: str, message: str, context: Optional[Dict] = None):
        """
        Log system error.

        Args:
            error_type: Type of error
            message: Error message
            context: Optional context dictionary
        """
        event = {
            "event": "error",
            "error_type": error_type,
            "message": message,
            **(context or {})
        }
        self._log_event(event)


def get_audit_logger(config: Optional[Dict[str, Any]] = None) -> Optional[AuditLogger]:
    """
    Get configured audit logger instance.

    Args:
        config: Audit config dict with 'enabled', 'file' and 'level' keys

    Returns:
        AuditLogger instance, or None when auditing is disabled
    """
    if config is None:
        config = {'enabled': True, 'file': './audit.log', 'level': 'INFO'}

    if not config.get('enabled', True):
        return None

    return AuditLogger(
        log_file=config.get('file', './audit.log'),
        level=config.get('level', 'INFO')
    )
