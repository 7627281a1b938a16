from fastapi import Request

from ..chat.orchestrator import ChatOrchestrator
from ..corpus.index import CorpusIndex


# Process-scoped resources are created in the application lifespan and
# stored on app.state; routes reach them only through these providers.

def get_orchestrator(request: Request) -> ChatOrchestrator:
    return request.app.state.orchestrator


def get_corpus_index(request: Request) -> CorpusIndex:
    return request.app.state.orchestrator.index
