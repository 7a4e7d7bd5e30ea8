"""Keyword-scored reference catalogue used by the advisor agents."""

from __future__ import annotations

import logging
import re
from importlib import resources
from typing import Iterable, List, Optional, Protocol

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_WORD = re.compile(r"[a-z0-9]+")


class KnowledgeDocument(BaseModel):
    id: str
    collection: str
    title: str
    text: str
    keywords: List[str] = Field(default_factory=list)


class KnowledgeSource(Protocol):
    async def search(
        self, collection: str, query: str, limit: int = 3
    ) -> list[KnowledgeDocument]:
        """Documents from ``collection`` most relevant to ``query``."""


def _tokens(text: str) -> set[str]:
    return set(_WORD.findall(text.lower()))


class StaticKnowledgeBase:
    """In-process :class:`KnowledgeSource` over a fixed document list.

    A document scores two points per keyword phrase found in the query and one
    point per title word; ties keep catalogue order. When nothing matches, the
    first documents of the collection are returned so advisors always have
    some context.
    """

    def __init__(self, documents: Iterable[KnowledgeDocument]) -> None:
        self._documents = list(documents)

    @classmethod
    def from_yaml(cls, path: Optional[str] = None) -> "StaticKnowledgeBase":
        if path is None:
            text = resources.files("arthagent.data").joinpath("knowledge.yaml").read_text(
                encoding="utf-8"
            )
        else:
            with open(path, encoding="utf-8") as f:
                text = f.read()
        data = yaml.safe_load(text) or {}
        documents = [KnowledgeDocument(**item) for item in data.get("documents", [])]
        logger.debug(f"Loaded {len(documents)} knowledge documents")
        return cls(documents)

    @property
    def collections(self) -> set[str]:
        return {doc.collection for doc in self._documents}

    def _score(self, doc: KnowledgeDocument, query: str, query_tokens: set[str]) -> int:
        score = 0
        for keyword in doc.keywords:
            keyword = keyword.lower()
            if " " in keyword or "-" in keyword:
                if keyword in query:
                    score += 2
            elif keyword in query_tokens:
                score += 2
        score += len(_tokens(doc.title) & query_tokens)
        return score

    async def search(
        self, collection: str, query: str, limit: int = 3
    ) -> list[KnowledgeDocument]:
        query = query.lower()
        query_tokens = _tokens(query)
        candidates = [doc for doc in self._documents if doc.collection == collection]
        scored = [(self._score(doc, query, query_tokens), i, doc) for i, doc in enumerate(candidates)]
        matches = [item for item in scored if item[0] > 0]
        if not matches:
            return candidates[:limit]
        matches.sort(key=lambda item: (-item[0], item[1]))
        return [doc for _, _, doc in matches[:limit]]
