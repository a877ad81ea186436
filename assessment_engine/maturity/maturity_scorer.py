#!/usr/bin/env python3
# CUI // SP-CTI
"""Maturity Scorer: assess a project snapshot against the process area taxonomy.

Scores each process area 0-100 from its weighted evidence rules, then derives
the staged maturity level (highest level whose areas, and every area below
it, are satisfied) and the progress toward the next level.

Pure function of its input: same snapshot in, identical assessment out.

Usage:
    python -m assessment_engine.maturity.maturity_scorer --project-file project.json --json
    python -m assessment_engine.maturity.maturity_scorer --project-file project.json --human
"""

import argparse
import json
import logging
import sys

from assessment_engine.maturity.process_areas import (
    MAX_LEVEL,
    PROCESS_AREAS,
    SATISFACTION_THRESHOLD,
    ProcessArea,
)
from assessment_engine.project.artifact_store import ProjectSnapshot
from assessment_engine.resilience.correlation import configure_logging
from assessment_engine.resilience.errors import AssessmentError
from assessment_engine.schemas.maturity import MaturityAssessment, ProcessAreaStatus

logger = logging.getLogger("assessment_engine.maturity.maturity_scorer")

NOT_APPLICABLE_GAP = "No applicable artifacts"


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def score_process_area(area: ProcessArea, snapshot: ProjectSnapshot) -> ProcessAreaStatus:
    """Evaluate one process area."""
    if not area.applicable(snapshot):
        return ProcessAreaStatus(
            process_area_id=area.id, name=area.name, level=area.level,
            score=0, is_satisfied=False, gaps=(NOT_APPLICABLE_GAP,),
        )

    evidence, gaps, blocking = [], [], []
    total_weight = satisfied_weight = 0
    for rule in area.evidence_rules:
        ok, detail = rule.check(snapshot)
        total_weight += rule.weight
        if ok:
            satisfied_weight += rule.weight
            evidence.append(f"{rule.description}: {detail}.")
        else:
            gaps.append(f"Missing: {rule.description.lower()} ({detail}).")

    for gap_rule in area.gap_rules:
        found = gap_rule.finder(snapshot)
        gaps.extend(found)
        if gap_rule.blocking:
            blocking.extend(found)

    score = _round_half_up(100 * satisfied_weight / total_weight) if total_weight else 0
    score = max(0, min(100, score))
    return ProcessAreaStatus(
        process_area_id=area.id,
        name=area.name,
        level=area.level,
        score=score,
        is_satisfied=score >= SATISFACTION_THRESHOLD and not blocking,
        evidence=tuple(evidence),
        gaps=tuple(gaps),
        blocking_gaps=tuple(blocking),
    )


def assess(snapshot: ProjectSnapshot) -> MaturityAssessment:
    """Score every process area and derive the maturity level."""
    statuses = tuple(score_process_area(area, snapshot) for area in PROCESS_AREAS)

    maturity_level = 0
    for level in range(1, MAX_LEVEL + 1):
        at_level = [s for s in statuses if s.level == level]
        if at_level and all(s.is_satisfied for s in at_level):
            maturity_level = level
        else:
            break

    if maturity_level >= MAX_LEVEL:
        level_progress = 100
    else:
        next_level = [s for s in statuses if s.level == maturity_level + 1]
        satisfied = sum(1 for s in next_level if s.is_satisfied)
        level_progress = _round_half_up(100 * satisfied / len(next_level)) if next_level else 0

    logger.debug("Assessed maturity level %d (%d%% toward next)", maturity_level, level_progress)
    return MaturityAssessment(maturity_level=maturity_level, level_progress=level_progress,
                              process_areas=statuses)


def main():
    parser = argparse.ArgumentParser(description="Process maturity scorer")
    parser.add_argument("--project-file", required=True, help="Project JSON export")
    parser.add_argument("--area", help="Show a single process area (e.g. REQM)")
    parser.add_argument("--json", action="store_true", help="JSON output")
    parser.add_argument("--human", action="store_true", help="Human-readable output")
    args = parser.parse_args()
    configure_logging()

    from assessment_engine.project.project_loader import load_project_file

    try:
        session = load_project_file(args.project_file)
    except (OSError, ValueError, AssessmentError) as exc:
        result = {"error": str(exc)}
    else:
        assessment = assess(session.snapshot())
        if args.area:
            try:
                result = assessment.get(args.area.upper()).to_dict()
            except KeyError:
                result = {"error": f"Unknown process area '{args.area}'"}
        else:
            result = assessment.to_dict()

    if args.json or not args.human:
        print(json.dumps(result, indent=2))
    elif "error" in result:
        print(f"ERROR: {result['error']}")
    else:
        statuses = result.get("process_areas", [result])
        if "maturity_level" in result:
            print(f"Maturity Level: {result['maturity_level']}")
            print(f"Progress to next level: {result['level_progress']}%")
            print("\nProcess Areas:")
        for status in statuses:
            bar = "█" * (status["score"] // 5) + "░" * (20 - status["score"] // 5)
            mark = "+" if status["is_satisfied"] else "X"
            print(f"  [{mark}] L{status['level']} {status['process_area_id']:5s} "
                  f"{status['name']:35s} {bar} {status['score']}%")
            for gap in status["blocking_gaps"]:
                print(f"        BLOCKING: {gap}")

    if "error" in result:
        sys.exit(1)


if __name__ == "__main__":
    main()
