"""
PostgreSQL Store
================

RAGStore backed by PostgreSQL through psycopg2.

- Connection pooling with ThreadedConnectionPool (one pool per store instance)
- Fragment vectors stored as JSONB; when the pgvector extension is installed
  the nearest-fragment query casts them to `vector` and orders server-side
- Fragment replacement, failure cleanup and the cost counter update each run
  in a single transaction
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import psycopg2
from psycopg2 import pool as pg_pool
from psycopg2.extras import Json, RealDictCursor, execute_values

from .base import RAGStore
from ..core.config import DatabaseConfig
from ..governance.models import Decision, DecisionLogEntry
from ..rag.models import (
    Agent,
    CandidateFragment,
    ChatMessage,
    Document,
    DocumentStatus,
    Fragment,
    LLMProviderRecord,
)
from ..rag.similarity import ScoredCandidate

logger = logging.getLogger(__name__)


# Collections visible to an agent: linked to it, or global within the tenant
SCOPE_CTE = """
    WITH scope AS (
        SELECT DISTINCT c.id
        FROM collections c
        LEFT JOIN agent_collections ac
            ON c.id = ac.collection_id AND ac.agent_id = %(agent_id)s
        WHERE c.tenant_id = %(tenant_id)s
          AND (ac.agent_id IS NOT NULL OR c.is_global = TRUE)
    )
"""

CANDIDATE_FILTER = """
    FROM embeddings e
    JOIN documents d ON e.document_id = d.id
    WHERE d.collection_id IN (SELECT id FROM scope)
      AND d.status = 'completed'
      AND e.document_version = d.version
"""


def vector_literal(vector: List[float]) -> str:
    """pgvector text representation: [x1,x2,...]."""
    return "[" + ",".join(repr(float(x)) for x in vector) + "]"


def _row_to_document(row: Dict[str, Any]) -> Document:
    return Document(
        id=str(row["id"]),
        tenant_id=str(row["tenant_id"]),
        collection_id=str(row["collection_id"]),
        name=row["name"],
        file_path=row["file_path"],
        mime_type=row["mime_type"],
        file_size=row["file_size"],
        status=DocumentStatus(row["status"]),
        version=row["version"],
        error_message=row.get("error_message"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def _row_to_candidate(row: Dict[str, Any]) -> CandidateFragment:
    return CandidateFragment(
        document_id=str(row["document_id"]),
        document_name=row["document_name"],
        document_version=row["document_version"],
        chunk_index=row["chunk_index"],
        text=row["chunk_text"],
        vector=[float(x) for x in row["embedding"]],
    )


class PostgresStore(RAGStore):
    """
    PostgreSQL implementation of the store.

    Args:
        config: Database settings; read from the environment when omitted
        pool: Pre-built connection pool (mainly for tests)
    """

    def __init__(self, config: Optional[DatabaseConfig] = None, pool=None):
        self.config = config or DatabaseConfig()
        self._pool = pool
        self._vector_index: Optional[bool] = None

    def _get_pool(self):
        if self._pool is None:
            self._pool = pg_pool.ThreadedConnectionPool(
                self.config.pool_min_size,
                self.config.pool_max_size,
                **self.config.connection_dict,
            )
            logger.info("DB pool created")
        return self._pool

    def close(self):
        """Close the connection pool."""
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.info("DB pool closed")

    @contextmanager
    def _transaction(self, dict_rows: bool = True):
        """Cursor inside a transaction: commit on success, rollback on error."""
        pool = self._get_pool()
        conn = pool.getconn()
        try:
            factory = RealDictCursor if dict_rows else None
            with conn.cursor(cursor_factory=factory) as cur:
                yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            pool.putconn(conn)

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    def create_document(self, document: Document) -> Document:
        with self._transaction() as cur:
            cur.execute("""
                INSERT INTO documents (
                    tenant_id, collection_id, name, file_path,
                    mime_type, file_size, status, version
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING *
            """, (
                document.tenant_id,
                document.collection_id,
                document.name,
                document.file_path,
                document.mime_type,
                document.file_size,
                document.status.value,
                document.version,
            ))
            return _row_to_document(cur.fetchone())

    def get_document(self, document_id: str) -> Optional[Document]:
        with self._transaction() as cur:
            cur.execute("SELECT * FROM documents WHERE id = %s", (document_id,))
            row = cur.fetchone()
        return _row_to_document(row) if row else None

    def mark_processing(self, document_id: str) -> Optional[Document]:
        with self._transaction() as cur:
            cur.execute("""
                UPDATE documents
                SET status = 'processing', updated_at = NOW()
                WHERE id = %s
                RETURNING *
            """, (document_id,))
            row = cur.fetchone()
        return _row_to_document(row) if row else None

    def _lock_version(self, cur, document_id: str) -> Optional[int]:
        cur.execute("SELECT version FROM documents WHERE id = %s FOR UPDATE", (document_id,))
        row = cur.fetchone()
        return row["version"] if row else None

    def replace_fragments_and_complete(
        self,
        document_id: str,
        version: int,
        fragments: List[Fragment],
    ) -> bool:
        with self._transaction() as cur:
            if self._lock_version(cur, document_id) != version:
                return False

            cur.execute("DELETE FROM embeddings WHERE document_id = %s", (document_id,))

            if fragments:
                execute_values(cur, """
                    INSERT INTO embeddings (
                        document_id, document_version, chunk_index, chunk_text, embedding
                    ) VALUES %s
                """, [
                    (document_id, version, f.chunk_index, f.text, Json(f.vector))
                    for f in fragments
                ])

            cur.execute("""
                UPDATE documents
                SET status = 'completed', error_message = NULL, updated_at = NOW()
                WHERE id = %s
            """, (document_id,))
        return True

    def mark_failed(self, document_id: str, version: int, error_message: str) -> bool:
        with self._transaction() as cur:
            if self._lock_version(cur, document_id) != version:
                return False
            cur.execute("DELETE FROM embeddings WHERE document_id = %s", (document_id,))
            cur.execute("""
                UPDATE documents
                SET status = 'failed', error_message = %s, updated_at = NOW()
                WHERE id = %s
            """, (error_message, document_id))
        return True

    def reset_for_reprocess(self, document_id: str) -> Optional[Document]:
        with self._transaction() as cur:
            cur.execute("""
                UPDATE documents
                SET status = 'pending', version = version + 1,
                    error_message = NULL, updated_at = NOW()
                WHERE id = %s
                RETURNING *
            """, (document_id,))
            row = cur.fetchone()
        return _row_to_document(row) if row else None

    def list_documents_by_status(self, status: DocumentStatus, limit: int = 100) -> List[Document]:
        with self._transaction() as cur:
            cur.execute("""
                SELECT * FROM documents
                WHERE status = %s
                ORDER BY updated_at ASC
                LIMIT %s
            """, (DocumentStatus(status).value, limit))
            rows = cur.fetchall()
        return [_row_to_document(r) for r in rows]

    def delete_document(self, document_id: str) -> bool:
        with self._transaction() as cur:
            cur.execute("DELETE FROM embeddings WHERE document_id = %s", (document_id,))
            cur.execute("DELETE FROM documents WHERE id = %s", (document_id,))
            return cur.rowcount > 0

    # -------------------------------------------------------------------------
    # Fragments
    # -------------------------------------------------------------------------

    def get_fragments(self, document_id: str) -> List[Fragment]:
        with self._transaction() as cur:
            cur.execute("""
                SELECT id, document_id, document_version, chunk_index, chunk_text, embedding
                FROM embeddings
                WHERE document_id = %s
                ORDER BY chunk_index
            """, (document_id,))
            rows = cur.fetchall()
        return [
            Fragment(
                id=str(r["id"]),
                document_id=str(r["document_id"]),
                document_version=r["document_version"],
                chunk_index=r["chunk_index"],
                text=r["chunk_text"],
                vector=[float(x) for x in r["embedding"]],
            )
            for r in rows
        ]

    def delete_fragments(self, document_id: str) -> int:
        with self._transaction() as cur:
            cur.execute("DELETE FROM embeddings WHERE document_id = %s", (document_id,))
            return cur.rowcount

    def list_candidate_fragments(self, tenant_id: str, agent_id: str) -> List[CandidateFragment]:
        with self._transaction() as cur:
            cur.execute(SCOPE_CTE + """
                SELECT e.document_id, e.chunk_index, e.chunk_text, e.embedding,
                       d.name AS document_name, d.version AS document_version
            """ + CANDIDATE_FILTER, {"tenant_id": tenant_id, "agent_id": agent_id})
            rows = cur.fetchall()
        return [_row_to_candidate(r) for r in rows]

    def supports_vector_index(self) -> bool:
        if not self.config.use_pgvector:
            return False
        if self._vector_index is None:
            try:
                with self._transaction(dict_rows=False) as cur:
                    cur.execute("SELECT 1 FROM pg_extension WHERE extname = 'vector'")
                    self._vector_index = cur.fetchone() is not None
            except psycopg2.Error as e:
                logger.warning(f"pgvector detection failed, using linear scan: {e}")
                return False
            logger.info(f"pgvector available: {self._vector_index}")
        return self._vector_index

    def nearest_fragments(
        self,
        tenant_id: str,
        agent_id: str,
        query_vector: List[float],
        limit: int,
    ) -> List[ScoredCandidate]:
        params = {
            "tenant_id": tenant_id,
            "agent_id": agent_id,
            "query": vector_literal(query_vector),
            "limit": limit,
        }
        with self._transaction() as cur:
            cur.execute(SCOPE_CTE + """
                SELECT e.document_id, e.chunk_index, e.chunk_text, e.embedding,
                       d.name AS document_name, d.version AS document_version,
                       1 - ((e.embedding::text)::vector <=> %(query)s::vector) AS similarity
            """ + CANDIDATE_FILTER + """
                ORDER BY (e.embedding::text)::vector <=> %(query)s::vector,
                         e.document_id, e.chunk_index
                LIMIT %(limit)s
            """, params)
            rows = cur.fetchall()
        # pgvector yields NaN distance for zero vectors; treat as no similarity
        return [
            (_row_to_candidate(r), float(r["similarity"]) if r["similarity"] == r["similarity"] else 0.0)
            for r in rows
        ]

    # -------------------------------------------------------------------------
    # Agents
    # -------------------------------------------------------------------------

    def get_agent(self, agent_id: str, tenant_id: str) -> Optional[Agent]:
        with self._transaction() as cur:
            cur.execute("""
                SELECT * FROM agents
                WHERE id = %s AND tenant_id = %s AND is_active = TRUE
            """, (agent_id, tenant_id))
            row = cur.fetchone()
        if not row:
            return None
        return Agent(
            id=str(row["id"]),
            tenant_id=str(row["tenant_id"]),
            name=row["name"],
            system_prompt=row.get("system_prompt"),
            model=row.get("model"),
            temperature=row.get("temperature"),
            mode=row["mode"],
            allowed_topics=list(row.get("allowed_topics") or []),
            forbidden_topics=list(row.get("forbidden_topics") or []),
            kill_switch=row["kill_switch"],
            cost_limit_daily=float(row["cost_limit_daily"]),
            cost_used_today=float(row["cost_used_today"]),
            enable_rag=row["enable_rag"],
            is_active=row["is_active"],
        )

    def increment_agent_cost(self, agent_id: str, amount: float) -> Optional[float]:
        with self._transaction() as cur:
            cur.execute("""
                UPDATE agents
                SET cost_used_today = LEAST(
                        cost_used_today + %s,
                        GREATEST(cost_limit_daily, cost_used_today)
                    ),
                    updated_at = NOW()
                WHERE id = %s
                RETURNING cost_used_today
            """, (amount, agent_id))
            row = cur.fetchone()
        return float(row["cost_used_today"]) if row else None

    # -------------------------------------------------------------------------
    # Chat history
    # -------------------------------------------------------------------------

    def get_conversation_history(
        self,
        tenant_id: str,
        conversation_id: str,
        limit: int,
    ) -> List[Dict[str, str]]:
        with self._transaction() as cur:
            cur.execute("""
                SELECT role, content FROM (
                    SELECT role, content, created_at
                    FROM chat_messages
                    WHERE conversation_id = %s AND tenant_id = %s
                    ORDER BY created_at DESC
                    LIMIT %s
                ) recent
                ORDER BY created_at ASC
            """, (conversation_id, tenant_id, limit))
            rows = cur.fetchall()
        return [{"role": r["role"], "content": r["content"]} for r in rows]

    def save_chat_message(self, message: ChatMessage) -> None:
        with self._transaction() as cur:
            cur.execute("""
                INSERT INTO chat_messages (
                    tenant_id, user_id, agent_id, conversation_id,
                    role, content, tokens_used, latency_ms, evidence
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            """, (
                message.tenant_id,
                message.user_id,
                message.agent_id,
                message.conversation_id,
                message.role,
                message.content,
                message.tokens_used,
                message.latency_ms,
                Json([e.to_dict() for e in message.evidence]),
            ))

    # -------------------------------------------------------------------------
    # Decision log
    # -------------------------------------------------------------------------

    def append_decision_log(self, entry: DecisionLogEntry) -> None:
        with self._transaction() as cur:
            cur.execute("""
                INSERT INTO decision_logs (
                    tenant_id, user_id, agent_id, action, decision,
                    reason, input_preview, output_preview, metadata
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            """, (
                entry.tenant_id,
                entry.user_id,
                entry.agent_id,
                entry.action,
                Decision(entry.decision).value,
                entry.reason,
                entry.input_preview,
                entry.output_preview,
                Json(entry.metadata),
            ))

    def list_decision_logs(
        self,
        tenant_id: str,
        agent_id: Optional[str] = None,
        decision: Optional[Decision] = None,
        limit: Optional[int] = None,
    ) -> List[DecisionLogEntry]:
        query = "SELECT * FROM decision_logs WHERE tenant_id = %s"
        params: List[Any] = [tenant_id]

        if agent_id:
            query += " AND agent_id = %s"
            params.append(agent_id)
        if decision:
            query += " AND decision = %s"
            params.append(Decision(decision).value)

        query += " ORDER BY created_at DESC"
        if limit:
            query += " LIMIT %s"
            params.append(limit)

        with self._transaction() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()

        return [
            DecisionLogEntry(
                id=str(r["id"]),
                tenant_id=str(r["tenant_id"]),
                user_id=str(r["user_id"]),
                agent_id=str(r["agent_id"]),
                action=r["action"],
                decision=Decision(r["decision"]),
                reason=r["reason"],
                input_preview=r["input_preview"],
                output_preview=r.get("output_preview"),
                metadata=r.get("metadata") or {},
                created_at=r.get("created_at"),
            )
            for r in rows
        ]

    # -------------------------------------------------------------------------
    # Providers
    # -------------------------------------------------------------------------

    def get_default_provider(self, tenant_id: str) -> Optional[LLMProviderRecord]:
        with self._transaction() as cur:
            cur.execute("""
                SELECT * FROM llm_providers
                WHERE tenant_id = %s AND is_default = TRUE AND is_active = TRUE
                LIMIT 1
            """, (tenant_id,))
            row = cur.fetchone()
        if not row:
            return None
        return LLMProviderRecord(
            id=str(row["id"]),
            tenant_id=str(row["tenant_id"]),
            name=row["name"],
            api_key_encrypted=row["api_key_encrypted"],
            base_url=row.get("base_url") or None,
            is_default=row["is_default"],
            is_active=row["is_active"],
        )

    def apply_migration(self, sql: str) -> None:
        """Run a schema migration script."""
        with self._transaction(dict_rows=False) as cur:
            cur.execute(sql)
