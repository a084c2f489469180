"""
Curriculum lookup: subject + grade -> topic list used to phrase judge prompts.

The table is owned by the generation side of the system; here it is only read
from a YAML file of the form:

    math:
      3: [Multiplication table, Perimeter]
    russian:
      5: [Phonetics, Morphemics]

A missing subject or grade is not an error: prompts render NOT_FOUND instead.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from itemguard.utils.io import read_yaml

logger = logging.getLogger(__name__)

NOT_FOUND = "not found"


class CurriculumLookup:
    def __init__(self, table: dict[str, dict[int, list[str]]] | None = None) -> None:
        self._table: dict[str, dict[int, list[str]]] = {}
        for subject, grades in (table or {}).items():
            self._table[str(subject).strip().lower()] = {
                int(g): [str(t) for t in (topics or [])] for g, topics in (grades or {}).items()
            }

    @classmethod
    def from_yaml(cls, path: str | Path | None) -> CurriculumLookup:
        if not path:
            return cls()
        p = Path(path)
        if not p.exists():
            logger.warning("Curriculum file not found: %s (topics will render as %r)", p, NOT_FOUND)
            return cls()
        raw: dict[str, Any] = read_yaml(p)
        lookup = cls(raw)
        logger.info("Loaded curriculum for %d subject(s) from %s", len(lookup._table), p)
        return lookup

    def topics_for(self, subject: str, grade: int) -> list[str]:
        return list(self._table.get((subject or "").strip().lower(), {}).get(int(grade), []))

    def describe(self, subject: str, grade: int) -> str:
        topics = self.topics_for(subject, grade)
        return ", ".join(topics) if topics else NOT_FOUND
