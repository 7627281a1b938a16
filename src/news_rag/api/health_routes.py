from typing import Annotated

from fastapi import APIRouter, Depends

from .dependencies import get_corpus_index
from .models import HealthStatus
from ..corpus.index import CorpusIndex

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthStatus)
def health(index: Annotated[CorpusIndex, Depends(get_corpus_index)]) -> HealthStatus:
    if index.ready:
        status = "ok"
    elif index.failed:
        status = "failed"
    else:
        status = "starting"
    return HealthStatus(
        status=status,
        corpus_ready=index.ready,
        corpus_size=index.size,
    )
