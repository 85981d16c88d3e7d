"""
RAG CLI
=======

Command-line interface for ingestion and retrieval management.

Usage:
    python -m src.rag.cli init                    # Apply the database schema
    python -m src.rag.cli process <document_id>   # Ingest a document now
    python -m src.rag.cli reprocess <document_id> # New version, ingest now
    python -m src.rag.cli recover                 # Ingest every pending document
    python -m src.rag.cli search "query" --agent <id> --tenant <id> -k 5
    python -m src.rag.cli worker                  # Run the background worker
"""

import argparse
import logging
import os
import sys
import time
from typing import List, Optional

from dotenv import load_dotenv
load_dotenv()

from src.core.config import get_settings
from src.core.errors import RAGPipelineError
from src.core.logging_config import setup_logging

logger = logging.getLogger(__name__)

MIGRATION_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))),
    "database", "migrations", "001_governed_rag.sql",
)


def init_schema(services) -> bool:
    """Apply the SQL migration to the configured database."""
    if not os.path.exists(MIGRATION_PATH):
        logger.error(f"Migration file not found: {MIGRATION_PATH}")
        return False

    apply_migration = getattr(services.store, "apply_migration", None)
    if apply_migration is None:
        logger.error("Configured store does not take SQL migrations")
        return False

    with open(MIGRATION_PATH, "r") as f:
        apply_migration(f.read())

    logger.info("Schema initialized")
    return True


def _print_result(result) -> bool:
    print(f"Document {result.document_id} v{result.version}: {result.status.value}")
    print(f"  fragments stored:  {result.fragments_stored}")
    print(f"  fragments skipped: {result.fragments_skipped}")
    if result.stale:
        print("  superseded by a newer version")
    if result.error:
        print(f"  error: {result.error}")
    return result.succeeded


def process(services, document_id: str) -> bool:
    return _print_result(services.ingestion.process_document(document_id))


def reprocess(services, document_id: str) -> bool:
    return _print_result(services.ingestion.reprocess_document(document_id))


def recover(services) -> bool:
    """Queue every pending document and process the queue in this process."""
    queued = services.worker.recover_pending()
    results = services.worker.drain()
    failed = [r for r in results if not r.succeeded and not r.stale]
    print(f"Recovered {queued} pending documents: {len(results) - len(failed)} ok, {len(failed)} failed")
    return not failed


def search(services, query: str, agent_id: str, tenant_id: str, k: int) -> bool:
    result = services.chat.retrieve_context(query, agent_id, tenant_id, top_k=k)

    print(f"\n{'='*60}")
    print(f"Query: {query}")
    print(f"Agent: {agent_id}")
    print('='*60)

    if result.is_empty:
        print("\nNo evidence above the similarity floor")
        return True

    for i, e in enumerate(result.evidence, 1):
        print(f"\n[{i}] {e.document_name} v{e.document_version} #{e.chunk_index} "
              f"(similarity: {e.similarity_score:.3f})")
        print(f"    {e.chunk_text[:200]}...")

    return True


def run_worker(services) -> bool:
    """Run the ingestion worker until interrupted."""
    services.worker.start()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping worker...")
    finally:
        services.worker.stop()
    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Governed RAG CLI")
    subparsers = parser.add_subparsers(dest="command", help="Command")

    subparsers.add_parser("init", help="Apply the database schema")

    process_parser = subparsers.add_parser("process", help="Ingest a document now")
    process_parser.add_argument("document_id")

    reprocess_parser = subparsers.add_parser("reprocess", help="Bump version and ingest now")
    reprocess_parser.add_argument("document_id")

    subparsers.add_parser("recover", help="Ingest every pending document")

    search_parser = subparsers.add_parser("search", help="Test retrieval for an agent")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("--agent", required=True, help="Agent id")
    search_parser.add_argument("--tenant", required=True, help="Tenant id")
    search_parser.add_argument("-k", type=int, default=5, help="Number of results")

    subparsers.add_parser("worker", help="Run the background ingestion worker")

    return parser


def main(argv: Optional[List[str]] = None, services=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if services is None:
        from src.api.services import build_services

        settings = get_settings()
        setup_logging(
            level=settings.logging.level,
            json_output=settings.logging.json_logs,
            log_file=settings.logging.log_file,
        )
        services = build_services(settings)

    try:
        if args.command == "init":
            success = init_schema(services)
        elif args.command == "process":
            success = process(services, args.document_id)
        elif args.command == "reprocess":
            success = reprocess(services, args.document_id)
        elif args.command == "recover":
            success = recover(services)
        elif args.command == "search":
            success = search(services, args.query, args.agent, args.tenant, args.k)
        else:
            success = run_worker(services)
    except RAGPipelineError as e:
        logger.error(f"{args.command} failed: {e.message}")
        success = False

    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
