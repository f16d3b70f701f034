"""
Per-document analysis state.

The engine is stateless; a Workspace owns the per-URI state an editor
integration needs: the latest known version of each document and the
latest completed analysis. Cancellation is expressed by version
comparison: an analysis that finishes after a newer version has been
registered is discarded, never published.

Everything runs on one event loop, so the state map needs no locks.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from .analyzer.completion import CompletionItem
from .analyzer.diagnostics import Diagnostic
from .engine import AnalysisEngine, AnalysisResult

logger = logging.getLogger(__name__)


@dataclass
class DocumentState:
    uri: str
    latest_version: int
    result: Optional[AnalysisResult] = None

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return self.result.diagnostics if self.result is not None else []

    @property
    def is_current(self) -> bool:
        """The published result belongs to the latest known version."""
        return self.result is not None and self.result.version == self.latest_version


class Workspace:
    """Versioned analysis state for every open document."""

    def __init__(self, engine: Optional[AnalysisEngine] = None):
        self.engine = engine or AnalysisEngine()
        self._documents: Dict[str, DocumentState] = {}

    def state(self, uri: str) -> Optional[DocumentState]:
        return self._documents.get(uri)

    @property
    def uris(self) -> List[str]:
        return list(self._documents)

    def register(self, uri: str, version: int) -> DocumentState:
        """Record ``version`` as the latest known version of ``uri``."""
        state = self._documents.get(uri)
        if state is None:
            state = DocumentState(uri, version)
            self._documents[uri] = state
        elif version > state.latest_version:
            state.latest_version = version
        return state

    async def analyze(self, uri: str, text: str, version: int) -> Optional[AnalysisResult]:
        """
        Analyze one version of a document and publish the result.

        Yields to the event loop once before analysing, so edits that
        arrive meanwhile are registered first. Returns None, without
        publishing, when the version is superseded or the document was
        closed.
        """
        self.register(uri, version)
        await asyncio.sleep(0)

        state = self._documents.get(uri)
        if state is None or version < state.latest_version:
            logger.debug("Skipping superseded version %d of %s", version, uri)
            return None

        result = self.engine.analyze(text, version)

        state = self._documents.get(uri)
        if state is None or version < state.latest_version:
            logger.debug("Discarding analysis of superseded version %d of %s", version, uri)
            return None
        state.result = result
        return result

    def complete(self, uri: str, line: int, column: int) -> List[CompletionItem]:
        """
        Complete against the latest completed analysis of ``uri``.

        Never waits for in-flight analysis; the result may be stale. An
        unknown or never-analysed document yields no suggestions.
        """
        state = self._documents.get(uri)
        if state is None or state.result is None:
            return []
        return self.engine.complete(state.result, line, column)

    def close(self, uri: str) -> None:
        """Drop all state for ``uri``; in-flight analyses will be discarded."""
        if self._documents.pop(uri, None) is not None:
            logger.debug("Closed %s", uri)
