import re
from typing import List

import pytest
from httpx import ASGITransport, AsyncClient

from news_rag.api.dependencies import get_corpus_index, get_orchestrator
from news_rag.chat.context import ContextAssembler
from news_rag.chat.orchestrator import ChatOrchestrator
from news_rag.corpus.index import CorpusIndex
from news_rag.corpus.models import Article
from news_rag.embeddings.embedder import HashingEmbedder
from news_rag.main import create_app
from news_rag.sessions.backends import InMemorySessionBackend
from news_rag.sessions.store import SessionStore


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class QuestionEchoGenerator:
    """Replies "answer: <question>" and records every prompt it saw."""

    def __init__(self):
        self.prompts: List[str] = []

    async def generate(self, prompt: str, max_new_tokens: int) -> str:
        self.prompts.append(prompt)
        question = re.search(r"Question: (.*)$", prompt, re.S).group(1)
        return f"answer: {question}"


@pytest.fixture
def articles() -> List[Article]:
    return [
        Article(id=0, title="A", content="Cats are mammals. They purr."),
        Article(id=1, title="B", content="Stocks rose today. Markets are volatile."),
    ]


@pytest.fixture
async def index(articles) -> CorpusIndex:
    idx = CorpusIndex(HashingEmbedder(dim=1024))
    await idx.build(articles)
    return idx


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend(clock) -> InMemorySessionBackend:
    return InMemorySessionBackend(clock=clock)


@pytest.fixture
def store(backend) -> SessionStore:
    return SessionStore(backend, ttl_seconds=3600)


@pytest.fixture
def generator() -> QuestionEchoGenerator:
    return QuestionEchoGenerator()


@pytest.fixture
def orchestrator(index, generator, store) -> ChatOrchestrator:
    return ChatOrchestrator(
        index=index,
        generator=generator,
        sessions=store,
        assembler=ContextAssembler(max_chars=2000),
        top_k=1,
    )


@pytest.fixture
async def client(orchestrator):
    app = create_app()
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_corpus_index] = lambda: orchestrator.index

    # ASGITransport does not run the lifespan: no Redis, no corpus file.
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides = {}
