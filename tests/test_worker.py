"""
Tests for the ingestion worker.

Most tests drive the queue synchronously with drain(); the lifecycle test
starts real threads with the rescan job disabled.

Usage:
    pytest tests/test_worker.py -v
"""

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from src.rag.ingestion import IngestionResult, RAGIngestion
from src.rag.models import DocumentStatus
from src.rag.worker import IngestionWorker
from src.storage.memory import InMemoryStore
from tests.conftest import FakeEmbedder, add_collection, add_document


def write_document(store, tmp_path, document_id, text="Refund policy."):
    path = tmp_path / f"{document_id}.txt"
    path.write_text(text, encoding="utf-8")
    return add_document(store, document_id, file_path=str(path))


class TestSubmit:
    """Queue de-duplication and recovery."""

    def setup_method(self):
        self.store = InMemoryStore()
        add_collection(self.store)
        self.ingestion = RAGIngestion(self.store, FakeEmbedder())
        self.worker = IngestionWorker(self.ingestion, self.store, threads=1, rescan_interval_seconds=0)

    def test_duplicate_submit_ignored(self, tmp_path):
        write_document(self.store, tmp_path, "doc-1")

        assert self.worker.submit("doc-1")
        assert not self.worker.submit("doc-1")
        assert self.worker.stats["queued"] == 1

    def test_drain_processes_queue(self, tmp_path):
        write_document(self.store, tmp_path, "doc-1")
        write_document(self.store, tmp_path, "doc-2")
        self.worker.submit("doc-1")
        self.worker.submit("doc-2")

        results = self.worker.drain()

        assert [r.document_id for r in results] == ["doc-1", "doc-2"]
        assert all(r.succeeded for r in results)
        assert self.worker.stats == {"queued": 0, "running": 0, "completed": 2, "failed": 0}

    def test_failed_document_counted(self):
        add_document(self.store, "doc-1", file_path="/nonexistent.txt")
        self.worker.submit("doc-1")

        results = self.worker.drain()

        assert results[0].status == DocumentStatus.FAILED
        assert self.worker.stats["failed"] == 1

    def test_deleted_document_skipped(self):
        self.worker.submit("ghost")
        assert self.worker.drain() == []
        assert self.worker.stats["failed"] == 0

    def test_recover_pending(self, tmp_path):
        write_document(self.store, tmp_path, "doc-1")
        write_document(self.store, tmp_path, "doc-2")
        self.worker.submit("doc-1")

        assert self.worker.recover_pending() == 1
        self.worker.drain()

        assert self.store.list_documents_by_status(DocumentStatus.PENDING) == []
        assert len(self.store.list_documents_by_status(DocumentStatus.COMPLETED)) == 2

    def test_reprocess_queues_new_version(self, tmp_path):
        write_document(self.store, tmp_path, "doc-1")
        self.worker.submit("doc-1")
        self.worker.drain()

        document = self.worker.reprocess("doc-1")
        assert document.version == 2
        assert document.status == DocumentStatus.PENDING

        results = self.worker.drain()
        assert results[0].version == 2
        assert self.store.get_document("doc-1").status == DocumentStatus.COMPLETED

    def test_rescan_during_run_does_not_rerun(self, tmp_path):
        embedder = FakeEmbedder()
        ingestion = RAGIngestion(self.store, embedder)
        worker = IngestionWorker(ingestion, self.store, threads=1, rescan_interval_seconds=0)
        write_document(self.store, tmp_path, "doc-1")
        runs = []
        process = ingestion.process_document

        def tick_then_process(document_id):
            # Scheduler tick lands before the run marks the document processing
            runs.append(document_id)
            assert worker.recover_pending() == 0
            return process(document_id)

        ingestion.process_document = tick_then_process
        worker.submit("doc-1")

        results = worker.drain()

        assert runs == ["doc-1"]
        assert len(embedder.calls) == 1
        assert results[0].succeeded

    def test_explicit_submit_during_run_still_reruns(self):
        self.worker._running.add("doc-1")
        assert self.worker.submit("doc-1")
        assert self.worker.submit("doc-2", rerun_if_running=False)
        self.worker._running.add("doc-3")
        assert not self.worker.submit("doc-3", rerun_if_running=False)
        assert self.worker._rerun == {"doc-1"}


class TestRecoverStale:
    """Documents left in processing by a crashed run."""

    def setup_method(self):
        self.store = InMemoryStore()
        add_collection(self.store)
        self.worker = IngestionWorker(
            RAGIngestion(self.store, FakeEmbedder()), self.store,
            threads=1, rescan_interval_seconds=0, stale_processing_seconds=600,
        )

    def _processing(self, tmp_path, document_id, age_seconds):
        write_document(self.store, tmp_path, document_id)
        self.store.mark_processing(document_id)
        self.store.documents[document_id].updated_at = (
            datetime.now(timezone.utc) - timedelta(seconds=age_seconds)
        )

    def test_old_processing_document_requeued(self, tmp_path):
        self._processing(tmp_path, "doc-old", 3600)
        self._processing(tmp_path, "doc-fresh", 10)

        assert self.worker.recover_stale() == 1
        results = self.worker.drain()

        assert [r.document_id for r in results] == ["doc-old"]
        assert self.store.get_document("doc-old").status == DocumentStatus.COMPLETED
        assert self.store.get_document("doc-fresh").status == DocumentStatus.PROCESSING

    def test_naive_timestamps_treated_as_utc(self, tmp_path):
        self._processing(tmp_path, "doc-1", 0)
        self.store.documents["doc-1"].updated_at = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(hours=2)

        assert self.worker.recover_stale() == 1

    def test_running_document_not_requeued(self, tmp_path):
        self._processing(tmp_path, "doc-1", 3600)
        self.worker._running.add("doc-1")

        assert self.worker.recover_stale() == 0
        assert self.worker._rerun == set()

    def test_disabled(self, tmp_path):
        self._processing(tmp_path, "doc-1", 3600)
        self.worker.stale_processing_seconds = 0

        assert self.worker.recover_stale() == 0


class TestRerunWhileRunning:
    """A submit during a run schedules exactly one more run."""

    def test_rerun_scheduled_once(self):
        store = InMemoryStore()
        ingestion = MagicMock()
        worker = IngestionWorker(ingestion, store, rescan_interval_seconds=0)
        runs = []

        def process(document_id):
            runs.append(document_id)
            if len(runs) == 1:
                assert worker.submit(document_id)
                assert worker.submit(document_id)
            return IngestionResult(document_id, len(runs), DocumentStatus.COMPLETED)

        ingestion.process_document.side_effect = process
        worker.submit("doc-1")

        results = worker.drain()

        assert runs == ["doc-1", "doc-1"]
        assert [r.version for r in results] == [1, 2]

    def test_crash_counted_and_worker_continues(self):
        store = InMemoryStore()
        ingestion = MagicMock()
        ingestion.process_document.side_effect = [
            RuntimeError("boom"),
            IngestionResult("doc-2", 1, DocumentStatus.COMPLETED),
        ]
        worker = IngestionWorker(ingestion, store, rescan_interval_seconds=0)
        worker.submit("doc-1")
        worker.submit("doc-2")

        results = worker.drain()

        assert [r.document_id for r in results] == ["doc-2"]
        assert worker.stats["failed"] == 1
        assert worker.stats["completed"] == 1


class TestLifecycle:
    """Threads and start-up recovery."""

    def test_start_recovers_and_processes(self, tmp_path):
        store = InMemoryStore()
        add_collection(store)
        write_document(store, tmp_path, "doc-1")
        write_document(store, tmp_path, "doc-2")
        worker = IngestionWorker(
            RAGIngestion(store, FakeEmbedder()), store, threads=2, rescan_interval_seconds=0
        )

        worker.start()
        try:
            assert worker.is_running
            worker.join()
        finally:
            worker.stop()

        assert not worker.is_running
        assert len(store.list_documents_by_status(DocumentStatus.COMPLETED)) == 2

    def test_start_twice_is_harmless(self):
        store = InMemoryStore()
        worker = IngestionWorker(MagicMock(), store, threads=1, rescan_interval_seconds=0)
        worker.start()
        try:
            worker.start()
            assert len([t for t in threading.enumerate() if t.name.startswith("ingestion-worker")]) >= 1
        finally:
            worker.stop()

    def test_rescan_job_scheduled(self):
        store = InMemoryStore()
        worker = IngestionWorker(MagicMock(), store, threads=1, rescan_interval_seconds=3600)
        worker.start()
        try:
            job = worker._scheduler.get_job("ingestion_rescan")
            assert job is not None
        finally:
            worker.stop()
        assert worker._scheduler is None
