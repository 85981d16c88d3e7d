"""
Ingestion Worker
================

In-process task queue for document ingestion.

Upload and re-process requests return as soon as the document id is queued;
worker threads run the pipeline in the background. The document's `pending`
status is the durable marker: if the process dies with work still queued,
`recover_pending` finds those documents again. It runs at start-up and on an
APScheduler interval job. A document left in `processing` by a crashed run is
picked up by `recover_stale` at start-up once its last update is older than
the stale cutoff.
"""

import logging
import queue
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

from apscheduler.events import EVENT_JOB_ERROR, JobExecutionEvent
from apscheduler.schedulers.background import BackgroundScheduler

from ..core.errors import DocumentNotFoundError
from ..core.logging_config import log_context
from .ingestion import IngestionResult, RAGIngestion
from .models import Document, DocumentStatus

logger = logging.getLogger(__name__)

_STOP = object()


class IngestionWorker:
    """
    Queue plus worker threads around RAGIngestion.process_document.

    A document id is queued at most once. Submitting an id that is currently
    running schedules exactly one more run after the current one finishes, so
    a re-process issued mid-run is never lost.

    Args:
        ingestion: Pipeline to run
        store: Store scanned for pending documents
        threads: Number of worker threads
        rescan_interval_seconds: Period of the pending-document rescan (0 disables)
        stale_processing_seconds: Age after which a `processing` document is
            considered orphaned at start-up (0 disables)
    """

    def __init__(
        self,
        ingestion: RAGIngestion,
        store,
        threads: int = 2,
        rescan_interval_seconds: int = 60,
        stale_processing_seconds: int = 900,
    ):
        self.ingestion = ingestion
        self.store = store
        self.threads = max(1, threads)
        self.rescan_interval_seconds = rescan_interval_seconds
        self.stale_processing_seconds = stale_processing_seconds

        self._queue: "queue.Queue" = queue.Queue()
        self._lock = threading.Lock()
        self._queued: Set[str] = set()
        self._running: Set[str] = set()
        self._rerun: Set[str] = set()
        self._workers: List[threading.Thread] = []
        self._scheduler: Optional[BackgroundScheduler] = None

        self._completed = 0
        self._failed = 0

    @property
    def is_running(self) -> bool:
        return bool(self._workers)

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    def submit(self, document_id: str, rerun_if_running: bool = True) -> bool:
        """
        Queue a document for ingestion.

        Args:
            document_id: Document to ingest
            rerun_if_running: Schedule one more run when the id is running now.
                Rescans pass False: the running attempt already covers the
                version they found.

        Returns:
            False when the id is already waiting, or running without a rerun
        """
        with self._lock:
            if document_id in self._queued:
                return False
            if document_id in self._running:
                if not rerun_if_running:
                    return False
                self._rerun.add(document_id)
                return True
            self._queued.add(document_id)

        self._queue.put(document_id)
        logger.debug(f"Queued document {document_id}")
        return True

    def reprocess(self, document_id: str) -> Document:
        """Bump the document's version and queue it. Returns the pending document."""
        document = self.ingestion.prepare_reprocess(document_id)
        self.submit(document_id)
        return document

    def recover_pending(self, limit: int = 100) -> int:
        """Queue every pending document found in the store. Returns the number queued."""
        documents = self.store.list_documents_by_status(DocumentStatus.PENDING, limit=limit)
        queued = sum(1 for doc in documents if self.submit(doc.id, rerun_if_running=False))
        if queued:
            logger.info(f"Recovered {queued} pending documents")
        return queued

    def recover_stale(self, limit: int = 100) -> int:
        """Queue `processing` documents not updated within the stale cutoff. Returns the number queued."""
        if self.stale_processing_seconds <= 0:
            return 0

        cutoff = datetime.now(timezone.utc) - timedelta(seconds=self.stale_processing_seconds)
        documents = self.store.list_documents_by_status(DocumentStatus.PROCESSING, limit=limit)
        queued = sum(
            1 for doc in documents
            if _last_update(doc) < cutoff and self.submit(doc.id, rerun_if_running=False)
        )
        if queued:
            logger.warning(f"Recovered {queued} documents stuck in processing")
        return queued

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _run_one(self, document_id: str) -> Optional[IngestionResult]:
        with self._lock:
            self._queued.discard(document_id)
            self._running.add(document_id)

        result = None
        try:
            with log_context(document_id=document_id):
                result = self.ingestion.process_document(document_id)
            if result.succeeded:
                self._count(completed=1)
            elif not result.stale:
                self._count(failed=1)
        except DocumentNotFoundError:
            logger.warning(f"Document {document_id} disappeared before ingestion")
        except Exception:
            self._count(failed=1)
            logger.exception(f"Ingestion of document {document_id} crashed")
        finally:
            with self._lock:
                self._running.discard(document_id)
                rerun = document_id in self._rerun
                self._rerun.discard(document_id)
            if rerun:
                self.submit(document_id)

        return result

    def _count(self, completed: int = 0, failed: int = 0):
        with self._lock:
            self._completed += completed
            self._failed += failed

    def _worker_loop(self):
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._run_one(item)
            finally:
                self._queue.task_done()

    def drain(self) -> List[IngestionResult]:
        """Process everything queued in the calling thread. For CLI use and tests."""
        results = []
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return results
            try:
                if item is not _STOP:
                    result = self._run_one(item)
                    if result is not None:
                        results.append(result)
            finally:
                self._queue.task_done()

    def join(self):
        """Block until every queued document has been processed."""
        self._queue.join()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self):
        """Start worker threads and the rescan job, then recover stale and pending documents."""
        if self.is_running:
            logger.warning("Ingestion worker is already running")
            return

        for i in range(self.threads):
            thread = threading.Thread(
                target=self._worker_loop,
                name=f"ingestion-worker-{i}",
                daemon=True,
            )
            thread.start()
            self._workers.append(thread)

        if self.rescan_interval_seconds > 0:
            self._scheduler = BackgroundScheduler()
            self._scheduler.add_job(
                self.recover_pending,
                trigger="interval",
                seconds=self.rescan_interval_seconds,
                id="ingestion_rescan",
                name="Pending document rescan",
                max_instances=1,
                coalesce=True,
            )
            self._scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
            self._scheduler.start()

        logger.info(
            f"Ingestion worker started: {self.threads} threads, "
            f"rescan every {self.rescan_interval_seconds}s"
        )
        self.recover_stale()
        self.recover_pending()

    def stop(self, wait: bool = True):
        """Stop the rescan job and the worker threads."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=wait)
            self._scheduler = None

        for _ in self._workers:
            self._queue.put(_STOP)
        if wait:
            for thread in self._workers:
                thread.join()
        self._workers = []
        logger.info("Ingestion worker stopped")

    def _on_job_error(self, event: JobExecutionEvent):
        logger.error(f"Job {event.job_id} raised an exception: {event.exception}")

    @property
    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "queued": len(self._queued),
                "running": len(self._running),
                "completed": self._completed,
                "failed": self._failed,
            }


def _last_update(document: Document) -> datetime:
    stamp = document.updated_at or document.created_at
    if stamp is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    if stamp.tzinfo is None:
        return stamp.replace(tzinfo=timezone.utc)
    return stamp
