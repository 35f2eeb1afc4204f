"""
Vector store client: Milvus connection, embeddings (HF Inference API), and Q&A record storage.

Responsibility: Tenant-scoped similarity search and bulk fetch over the knowledge-base
collection. Tenants are Milvus partitions; each record carries file_id, question, answer.
Milvus COSINE scores are similarities, so they are converted to distances
(1 - similarity, lower = more similar) before leaving this module.
"""

import asyncio
import logging
from typing import Any, Protocol

import httpx
from pymilvus import MilvusClient
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from agentic_rag.core.config import (
    COLLECTION_NAME,
    EMBED_API_TIMEOUT,
    EMBED_BATCH_SIZE,
    HF_API_KEY,
    HF_EMBED_MODEL,
    MILVUS_TOKEN,
    MILVUS_URI,
    STORE_API_TIMEOUT,
    STORE_RETRY_ATTEMPTS,
    STORE_RETRY_BASE_DELAY,
    VECTOR_DIM,
)
from agentic_rag.core.errors import ServiceUnavailableError, StoreError
from agentic_rag.schemas.contract import SourceRecord

logger = logging.getLogger(__name__)

HF_API_URL_ROUTER = (
    "https://router.huggingface.co/hf-inference/models/"
    f"{HF_EMBED_MODEL}/pipeline/feature-extraction"
)
HF_API_URL_STANDARD = f"https://api-inference.huggingface.co/models/{HF_EMBED_MODEL}"

RECORD_FIELDS = ["file_id", "question", "answer"]


class KnowledgeStore(Protocol):
    """Tenant-scoped knowledge store used by the retrieval agent."""

    async def vector_search(self, tenant: str, query: str, limit: int) -> list[SourceRecord]: ...

    async def fetch_all(self, tenant: str, limit: int) -> list[SourceRecord]: ...


async def embed_texts(texts: list[str], batch_size: int | None = None) -> list[list[float]]:
    """
    Batch embed texts using Hugging Face Inference API (all-MiniLM-L6-v2).

    Returns list of 384-dim vectors (normalized for cosine similarity).
    Raises ServiceUnavailableError when the API key is missing, StoreError when the API rejects the request.
    """
    batch_size = batch_size if batch_size is not None else EMBED_BATCH_SIZE
    if not texts:
        return []
    if not HF_API_KEY:
        raise ServiceUnavailableError(
            "HF_API_KEY must be set in .env. Get a token from https://huggingface.co/settings/tokens"
        )

    headers = {
        "Authorization": f"Bearer {HF_API_KEY}",
        "Content-Type": "application/json",
    }
    all_embeddings: list[list[float]] = []

    async with httpx.AsyncClient(timeout=EMBED_API_TIMEOUT) as client:
        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            payload = {"inputs": batch, "options": {"wait_for_model": True}}
            response = None
            last_error = ""

            for api_url in (HF_API_URL_ROUTER, HF_API_URL_STANDARD):
                try:
                    response = await client.post(api_url, json=payload, headers=headers)
                except httpx.HTTPError as e:
                    last_error = str(e)
                    continue
                if response.status_code == 200:
                    break
                last_error = response.text[:200]
                if response.status_code != 403:
                    break

            if response is None or response.status_code != 200:
                status = response.status_code if response is not None else "no response"
                if status == 401:
                    raise StoreError("Invalid HF API key. Check HF_API_KEY")
                if status == 503:
                    raise StoreError(f"HF embedding model is loading. Retry later. {last_error}")
                raise StoreError(f"HF embedding API error ({status}): {last_error}")

            result = response.json()
            if isinstance(result, list) and result and isinstance(result[0], list):
                batch_emb = result
            else:
                batch_emb = [
                    item if isinstance(item, list) else [item]
                    for item in (result if isinstance(result, list) else [result])
                ]

            for vec in batch_emb:
                norm = sum(x * x for x in vec) ** 0.5 or 1.0
                all_embeddings.append([x / norm for x in vec])

    return all_embeddings


def similarity_to_distance(similarity: float) -> float:
    """Cosine similarity in [-1, 1] to a distance in [0, 2]."""
    return min(2.0, max(0.0, 1.0 - similarity))


def _hit_to_record(hit: dict) -> SourceRecord:
    # Search hits nest output fields under "entity"; query rows are flat.
    entity = hit.get("entity") or hit
    distance = 0.0
    if "distance" in hit:
        distance = similarity_to_distance(float(hit["distance"]))
    return SourceRecord(
        file_id=str(entity.get("file_id") or ""),
        question=entity.get("question") or "",
        answer=entity.get("answer") or "",
        distance=distance,
    )


class MilvusKnowledgeStore:
    """KnowledgeStore over a Milvus collection, one partition per tenant."""

    def __init__(
        self,
        uri: str = MILVUS_URI,
        token: str = MILVUS_TOKEN,
        collection_name: str = COLLECTION_NAME,
        timeout: float = STORE_API_TIMEOUT,
        retry_attempts: int = STORE_RETRY_ATTEMPTS,
        retry_base_delay: float = STORE_RETRY_BASE_DELAY,
        client: Any = None,
        embed=embed_texts,
    ) -> None:
        self.uri = uri
        self.token = token
        self.collection_name = collection_name
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay
        self._client = client
        self._client_lock = asyncio.Lock()
        self._embed = embed

    async def _get_client(self) -> Any:
        """Connect to Milvus on first use, off the event loop. The client is shared between requests."""
        if self._client is not None:
            return self._client
        async with self._client_lock:
            if self._client is None:
                if not self.uri:
                    raise ServiceUnavailableError("MILVUS_URI (and MILVUS_TOKEN for Zilliz Cloud) must be set in .env")
                try:
                    self._client = await asyncio.to_thread(MilvusClient, uri=self.uri, token=self.token)
                except Exception as e:
                    raise ServiceUnavailableError(f"Failed to connect to Milvus: {e}") from e
                logger.info("Milvus connection established")
        return self._client

    async def _run(self, method: str, **kwargs) -> Any:
        """Run a blocking client call in a worker thread, mapping failures to StoreError."""
        client = await self._get_client()
        try:
            return await asyncio.to_thread(getattr(client, method), **kwargs)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Milvus {method} failed: {e}") from e

    async def _search_once(self, tenant: str, query: str, limit: int) -> list[SourceRecord]:
        vectors = await self._embed([query])
        if not vectors:
            raise StoreError("Embedding API returned no vector for the query")
        results = await self._run(
            "search",
            collection_name=self.collection_name,
            data=vectors,
            limit=limit,
            partition_names=[tenant],
            output_fields=RECORD_FIELDS,
            timeout=self.timeout,
        )
        # one list of hits per query vector
        hits = results[0] if results else []
        return [_hit_to_record(h) for h in hits]

    async def vector_search(self, tenant: str, query: str, limit: int) -> list[SourceRecord]:
        """
        Similarity search scoped to `tenant`, at most `limit` records, best first.
        Retried with exponential backoff; raises StoreError after the last attempt.
        """
        logger.info("[store:vector_search] IN  tenant=%s query=%r limit=%d", tenant, query, limit)
        records: list[SourceRecord] = []
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=self.retry_base_delay),
            retry=retry_if_exception_type(StoreError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                records = await self._search_once(tenant, query, limit)
        records.sort(key=lambda r: r.distance)
        logger.info(
            "[store:vector_search] OUT records=%d file_ids=%s distances=%s",
            len(records),
            [r.file_id for r in records],
            [round(r.distance, 4) for r in records],
        )
        return records

    async def fetch_all(self, tenant: str, limit: int) -> list[SourceRecord]:
        """Return up to `limit` records of `tenant`, unordered and without distances."""
        logger.info("[store:fetch_all] IN  tenant=%s limit=%d", tenant, limit)
        rows = await self._run(
            "query",
            collection_name=self.collection_name,
            filter="",
            limit=limit,
            partition_names=[tenant],
            output_fields=RECORD_FIELDS,
            timeout=self.timeout,
        )
        records = [_hit_to_record(r) for r in rows or []]
        logger.info("[store:fetch_all] OUT records=%d", len(records))
        return records

    async def ensure_collection(self, tenant: str) -> None:
        """Create the collection (dim 384, COSINE) and the tenant partition if missing."""
        if not await self._run("has_collection", collection_name=self.collection_name):
            await self._run(
                "create_collection",
                collection_name=self.collection_name,
                dimension=VECTOR_DIM,
                primary_field_name="id",
                vector_field_name="vector",
                metric_type="COSINE",
                auto_id=True,
            )
            logger.info("Collection %s created (dim=%s)", self.collection_name, VECTOR_DIM)
        if not await self._run(
            "has_partition", collection_name=self.collection_name, partition_name=tenant
        ):
            await self._run(
                "create_partition", collection_name=self.collection_name, partition_name=tenant
            )
            logger.info("Tenant %r added to %s", tenant, self.collection_name)

    async def insert_records(self, tenant: str, records: list[SourceRecord]) -> int:
        """Embed question+answer of each record and insert into the tenant partition."""
        if not records:
            return 0
        embeddings = await self._embed([f"{r.question}\n{r.answer}" for r in records])
        rows = [
            {"vector": emb, "file_id": r.file_id, "question": r.question, "answer": r.answer}
            for r, emb in zip(records, embeddings)
        ]
        await self._run(
            "insert", collection_name=self.collection_name, data=rows, partition_name=tenant
        )
        await self._run("flush", collection_name=self.collection_name)
        logger.info("Embedded and stored %d records for tenant %r", len(rows), tenant)
        return len(rows)

    async def ping(self) -> bool:
        """True when Milvus answers and the collection exists. Raises StoreError if unreachable."""
        return bool(await self._run("has_collection", collection_name=self.collection_name))
