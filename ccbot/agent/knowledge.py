"""Static keyword knowledge base.

The file is a JSON object of the form::

    {"questions": [{"keywords": ["price", "价格"], "answer": "..."}]}

A query matches an entry when it contains any of the entry's keywords
(case-insensitive substring match). The first matching entry wins.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger


@dataclass
class KnowledgeEntry:
    keywords: list[str]
    answer: str


@dataclass
class KnowledgeBase:
    entries: list[KnowledgeEntry] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "KnowledgeBase":
        entries: list[KnowledgeEntry] = []
        questions = data.get("questions") if isinstance(data, dict) else None
        if not isinstance(questions, list):
            return cls()
        for item in questions:
            if not isinstance(item, dict):
                continue
            keywords = item.get("keywords")
            answer = item.get("answer")
            if not isinstance(keywords, list) or not isinstance(answer, str):
                continue
            entries.append(KnowledgeEntry(
                keywords=[str(k) for k in keywords if str(k).strip()],
                answer=answer,
            ))
        return cls(entries)

    @classmethod
    def load(cls, path: Path) -> "KnowledgeBase":
        """Load from a JSON file; a missing or broken file gives an empty base."""
        if not path.exists():
            logger.info(f"No knowledge base at {path}")
            return cls()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load knowledge base from {path}: {e}")
            return cls()
        kb = cls.from_dict(data)
        logger.info(f"Loaded {len(kb.entries)} knowledge base entries")
        return kb

    def search(self, query: str) -> str | None:
        lowered = query.lower()
        for entry in self.entries:
            for keyword in entry.keywords:
                if keyword.lower() in lowered:
                    return entry.answer
        return None
