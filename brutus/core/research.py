"""Background research requests raised during a call."""

from __future__ import annotations

import time
import uuid
from typing import Callable, List, Optional

from ..data.models import Research, ResearchStatus
from ..data.storage import CoachStore
from ..logging import get_logger
from ..services.oracle.base import AnalysisOracle
from .analysis.aggregator import InvalidRequestError
from .tasks import BackgroundTasks

LOGGER = get_logger(__name__)


class ResearchService:
    """Stores research requests and resolves them off the caller's thread."""

    def __init__(
        self,
        store: CoachStore,
        oracle: AnalysisOracle,
        tasks: BackgroundTasks,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.oracle = oracle
        self.tasks = tasks
        self._clock = clock

    def request(self, owner: str, query: str, session_id: Optional[str] = None) -> Research:
        if not query or not query.strip():
            raise InvalidRequestError("Query is required")
        research = Research(
            id=uuid.uuid4().hex,
            owner=owner,
            session_id=session_id,
            query=query.strip(),
            requested_at=self._clock(),
        )
        self.store.save_research(research)
        self.tasks.submit(f"research:{research.id}", self._process, research)
        LOGGER.info("Queued research %s for %s", research.id, owner)
        return research

    def _process(self, research: Research) -> Research:
        try:
            results = self.oracle.research(research.query)
        except Exception as exc:
            LOGGER.exception("Research %s failed", research.id)
            resolved = research.model_copy(
                update={
                    "status": ResearchStatus.FAILED,
                    "results": f"Research failed: {exc}",
                    "completed_at": self._clock(),
                }
            )
        else:
            resolved = research.model_copy(
                update={
                    "status": ResearchStatus.COMPLETED,
                    "results": results,
                    "completed_at": self._clock(),
                }
            )
        # Deleted while in flight: nothing to resolve.
        if self.store.fetch_research(research.owner, research.id) is None:
            LOGGER.info("Research %s was deleted before it completed", research.id)
            return resolved
        return self.store.save_research(resolved)

    def get(self, owner: str, research_id: str) -> Optional[Research]:
        return self.store.fetch_research(owner, research_id)

    def list(
        self,
        owner: str,
        session_id: Optional[str] = None,
        status: Optional[ResearchStatus] = None,
    ) -> List[Research]:
        return self.store.list_research(owner, session_id=session_id, status=status)

    def delete(self, owner: str, research_id: str) -> bool:
        return self.store.delete_research(owner, research_id)


__all__ = ["ResearchService"]
