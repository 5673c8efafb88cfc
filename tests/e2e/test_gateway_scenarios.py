"""
End-to-end scenarios through the gateway facade.

Everything below the facade is real (pool, engine, orchestrator, index);
only the model backends and the embedder are test doubles.
"""

import asyncio

import pytest

from core.domain import ErrorKind, HealthStatus
from core.exceptions import BackendUnavailableError, StreamInterruptedError
from services.factory import build_gateway
from utils.retry import RetryConfig, retry_result

from fakes import BagOfWordsEmbedder, FakeBackend

pytestmark = pytest.mark.e2e


def test_context_chat_uses_best_matching_document(animal_documents):
    backend = FakeBackend(deltas=["Yes, cats are mammals."])
    embedder = BagOfWordsEmbedder()
    gateway = build_gateway(backends=[backend], embedder=embedder)

    async def scenario():
        await gateway.ingest_documents(animal_documents)
        hits = (await gateway.search("are cats mammals?", k=1)).unwrap()
        reply = (await gateway.chat_with_context("are cats mammals?", k=1)).unwrap()
        return hits, reply

    hits, reply = asyncio.run(scenario())

    assert hits[0].document.content == "cats are mammals"
    assert reply.context[0].document.content == "cats are mammals"
    assert reply.response == "Yes, cats are mammals."
    context_message = backend.last_request.messages[-1].content
    assert "cats are mammals" in context_message
    assert "sharks are fish" not in context_message


def test_ingested_document_found_by_its_own_embedding(animal_documents):
    embedder = BagOfWordsEmbedder()
    gateway = build_gateway(backends=[FakeBackend()], embedder=embedder)

    async def scenario():
        report = (await gateway.ingest_documents(animal_documents)).unwrap()
        vector = await embedder.embed("sharks are fish")
        hits = await gateway.index.search(vector, 1)
        return report, hits

    report, hits = asyncio.run(scenario())
    assert hits[0].document.id == report.document_ids[2]


def test_failure_after_two_of_five_chunks_keeps_exactly_those_two():
    backend = FakeBackend(deltas=["The ", "answer ", "is ", "forty ", "two"], fail_after=2)
    gateway = build_gateway(backends=[backend], embedder=BagOfWordsEmbedder())
    received = []

    async def scenario():
        async for chunk in gateway.chat_stream("What is the answer?"):
            received.append(chunk.text)

    with pytest.raises(StreamInterruptedError) as exc_info:
        asyncio.run(scenario())

    assert received == ["The ", "answer "]
    assert exc_info.value.kind == ErrorKind.BACKEND_UNAVAILABLE
    assert exc_info.value.partial_text == "The answer "

    # the failed backend is out of rotation until the next health check
    assert gateway.pool.get(backend.name).status == HealthStatus.DEGRADED
    assert asyncio.run(gateway.chat("What is the answer?")).error.kind == ErrorKind.NO_HEALTHY_BACKEND


def test_non_streaming_chat_keeps_partial_text_of_failed_backend():
    backend = FakeBackend(deltas=["The ", "answer ", "is ", "forty ", "two"], fail_after=2)
    gateway = build_gateway(backends=[backend], embedder=BagOfWordsEmbedder())

    result = asyncio.run(gateway.chat("What is the answer?"))

    assert result.error.kind == ErrorKind.BACKEND_UNAVAILABLE
    assert result.error.partial_text == "The answer "


def test_caller_retry_fails_over_to_next_backend():
    primary = FakeBackend(name="primary", fail_after=0)
    secondary = FakeBackend(name="secondary", deltas=["fallback answer"])
    gateway = build_gateway(backends=[primary, secondary], embedder=BagOfWordsEmbedder())
    config = RetryConfig(max_attempts=2, initial_delay_ms=1.0, max_delay_ms=1.0, jitter=False)

    result = asyncio.run(retry_result(lambda: gateway.chat("Hi"), config, operation_name="chat"))

    reply = result.unwrap()
    assert reply.backend == "secondary"
    assert reply.response == "fallback answer"
    assert gateway.pool.get("primary").status == HealthStatus.DEGRADED


def test_health_check_takes_unreachable_backend_out_of_rotation():
    primary = FakeBackend(name="primary", probe_error=BackendUnavailableError("refused"))
    secondary = FakeBackend(name="secondary", deltas=["still here"])
    gateway = build_gateway(backends=[primary, secondary], embedder=BagOfWordsEmbedder())

    async def scenario():
        await gateway.pool.health_check()
        return await gateway.chat("Hi")

    reply = asyncio.run(scenario()).unwrap()
    assert reply.backend == "secondary"
    assert primary.requests == []
