#!/usr/bin/env python3
# CUI // SP-CTI
"""Maturity assessment result models.

Derived data only: recomputed from a project snapshot on demand and never
persisted apart from the inputs that produced it (except inside an exported
compliance package, which is a static copy).
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple


@dataclass(frozen=True)
class ProcessAreaStatus:
    """Score and explanation for one process area."""

    process_area_id: str
    name: str
    level: int
    score: int
    is_satisfied: bool
    evidence: Tuple[str, ...] = ()
    gaps: Tuple[str, ...] = ()
    blocking_gaps: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "process_area_id": self.process_area_id,
            "name": self.name,
            "level": self.level,
            "score": self.score,
            "is_satisfied": self.is_satisfied,
            "evidence": list(self.evidence),
            "gaps": list(self.gaps),
            "blocking_gaps": list(self.blocking_gaps),
        }


@dataclass(frozen=True)
class MaturityAssessment:
    """Aggregate maturity level plus per-area status, in taxonomy order."""

    maturity_level: int
    level_progress: int
    process_areas: Tuple[ProcessAreaStatus, ...] = field(default_factory=tuple)

    @property
    def process_areas_by_level(self) -> Dict[int, List[ProcessAreaStatus]]:
        grouped: Dict[int, List[ProcessAreaStatus]] = {}
        for status in self.process_areas:
            grouped.setdefault(status.level, []).append(status)
        return grouped

    def get(self, process_area_id: str) -> ProcessAreaStatus:
        for status in self.process_areas:
            if status.process_area_id == process_area_id:
                return status
        raise KeyError(process_area_id)

    def to_dict(self) -> dict:
        return {
            "maturity_level": self.maturity_level,
            "level_progress": self.level_progress,
            "process_areas": [s.to_dict() for s in self.process_areas],
            "process_areas_by_level": {
                str(level): [s.process_area_id for s in statuses]
                for level, statuses in sorted(self.process_areas_by_level.items())
            },
        }
