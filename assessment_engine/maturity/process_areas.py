#!/usr/bin/env python3
# CUI // SP-CTI
"""Process area taxonomy and evidence rules (CMMI-style, levels 1-5).

Each ProcessArea declares:
    applicable     predicate over the snapshot; False means there is nothing
                   to assess yet
    evidence       weighted predicates; the area's score is the satisfied
                   share of total weight
    gap rules      finders returning gap strings, either blocking (the area
                   cannot be satisfied while any are found) or advisory

Rules only read the ProjectSnapshot and DocumentIndex. They never touch the
ledger or mutable state, and iterate id-sorted tuples only.
"""

from dataclasses import dataclass
from typing import Callable, List, Tuple

from assessment_engine.project.artifact_store import MIN_SECTION_DESCRIPTION, ProjectSnapshot
from assessment_engine.schemas.artifacts import LinkKind

SATISFACTION_THRESHOLD = 80

Check = Callable[[ProjectSnapshot], Tuple[bool, str]]
Finder = Callable[[ProjectSnapshot], List[str]]


@dataclass(frozen=True)
class EvidenceRule:
    description: str
    weight: int
    check: Check


@dataclass(frozen=True)
class GapRule:
    finder: Finder
    blocking: bool = False


@dataclass(frozen=True)
class ProcessArea:
    id: str
    name: str
    level: int
    applicable: Callable[[ProjectSnapshot], bool]
    evidence_rules: Tuple[EvidenceRule, ...] = ()
    gap_rules: Tuple[GapRule, ...] = ()


# ---------------------------------------------------------------------------
# Snapshot helpers
# ---------------------------------------------------------------------------

def _pct(part: int, whole: int) -> int:
    return int(part * 100 / whole + 0.5) if whole else 0


def _tests_of(snapshot: ProjectSnapshot, requirement) -> tuple:
    return snapshot.linked(requirement.ref, LinkKind.REQUIREMENT_TEST_CASE)


def _is_traced(snapshot: ProjectSnapshot, item) -> bool:
    return bool(snapshot.neighbors(item.ref))


def _has_section(*keywords: str) -> Check:
    def check(snapshot: ProjectSnapshot) -> Tuple[bool, str]:
        index = snapshot.document_index
        for keyword in keywords:
            if index.has_section(keyword):
                return True, f"'{keyword}' section exists"
        return False, f"no document section mentions {' or '.join(keywords)}"
    return check


def _all_of(items_attr: str, predicate, label: str) -> Check:
    """Pass when every item in a collection satisfies ``predicate``."""
    def check(snapshot: ProjectSnapshot) -> Tuple[bool, str]:
        items = getattr(snapshot, items_attr)
        good = sum(1 for item in items if predicate(snapshot, item))
        return bool(items) and good == len(items), f"{_pct(good, len(items))}% {label}"
    return check


def _at_least(items_attr: str, predicate, share: int, label: str) -> Check:
    """Pass when at least ``share`` percent of a collection satisfies ``predicate``."""
    def check(snapshot: ProjectSnapshot) -> Tuple[bool, str]:
        items = getattr(snapshot, items_attr)
        pct = _pct(sum(1 for item in items if predicate(snapshot, item)), len(items))
        return bool(items) and pct >= share, f"{pct}% {label}"
    return check


# ---------------------------------------------------------------------------
# Evidence checks
# ---------------------------------------------------------------------------

def _documents_complete(snapshot: ProjectSnapshot) -> Tuple[bool, str]:
    index = snapshot.document_index
    pct = int(index.completeness * 100 + 0.5)
    return bool(index.documents) and pct >= SATISFACTION_THRESHOLD, \
        f"documents are {pct}% complete"


def _pass_rate(share: int) -> Check:
    def check(snapshot: ProjectSnapshot) -> Tuple[bool, str]:
        executed = [t for t in snapshot.test_cases if t.executed]
        pct = _pct(sum(1 for t in executed if t.passed), len(executed))
        return bool(executed) and pct >= share, f"{pct}% of executed tests passed"
    return check


def _any_baseline_ci(snapshot: ProjectSnapshot) -> Tuple[bool, str]:
    baselined = [ci.id for ci in snapshot.configuration_items if ci.status == "Baseline"]
    return bool(baselined), f"{len(baselined)} configuration item(s) baselined"


def _count(items_attr: str, label: str) -> Check:
    def check(snapshot: ProjectSnapshot) -> Tuple[bool, str]:
        n = len(getattr(snapshot, items_attr))
        return n > 0, f"{n} {label}"
    return check


def _high_priority_validated(snapshot: ProjectSnapshot) -> Tuple[bool, str]:
    high = [r for r in snapshot.requirements if r.priority == "High"]
    validated = [r for r in high if any(t.passed for t in _tests_of(snapshot, r))]
    return len(validated) == len(high), \
        f"{len(validated)} of {len(high)} high-priority requirement(s) validated"


def _closed_issues_traced(snapshot: ProjectSnapshot) -> Tuple[bool, str]:
    closed = [i for i in snapshot.issues if i.state == "closed"]
    traced = [i for i in closed if snapshot.neighbors(i.ref)]
    return bool(closed) and len(traced) == len(closed), \
        f"{len(traced)} of {len(closed)} closed issue(s) traced"


def _mitigations_tracked(snapshot: ProjectSnapshot) -> Tuple[bool, str]:
    resolved = [r for r in snapshot.risks if not r.is_open]
    tracked = [r for r in resolved if snapshot.neighbors(r.ref, LinkKind.ISSUE_RISK)]
    return bool(resolved) and len(tracked) == len(resolved), \
        f"{len(tracked)} of {len(resolved)} resolved risk(s) tied to an issue"


def _no_failed_tests(snapshot: ProjectSnapshot) -> Tuple[bool, str]:
    failed = [t for t in snapshot.test_cases if t.status == "Failed"]
    return bool(snapshot.test_cases) and not failed, f"{len(failed)} failing test(s)"


def _any_gherkin(snapshot: ProjectSnapshot) -> Tuple[bool, str]:
    n = sum(1 for t in snapshot.test_cases if t.gherkin)
    return n > 0, f"{n} test case(s) carry Gherkin scenarios"


# ---------------------------------------------------------------------------
# Gap finders
# ---------------------------------------------------------------------------

def _untested_requirements(snapshot: ProjectSnapshot) -> List[str]:
    return [f"Requirement '{r.id}' lacks test case coverage."
            for r in snapshot.requirements if not _tests_of(snapshot, r)]


def _verified_without_passing_test(snapshot: ProjectSnapshot) -> List[str]:
    return [f"Requirement '{r.id}' is Verified but has no passing test."
            for r in snapshot.requirements
            if r.status == "Verified" and not any(t.passed for t in _tests_of(snapshot, r))]


def _unlinked_tests(snapshot: ProjectSnapshot) -> List[str]:
    return [f"Test case '{t.id}' is not linked to any requirement."
            for t in snapshot.test_cases
            if not snapshot.neighbors(t.ref, LinkKind.REQUIREMENT_TEST_CASE)]


def _unexecuted_tests(snapshot: ProjectSnapshot) -> List[str]:
    return [f"Test case '{t.id}' has not been run."
            for t in snapshot.test_cases if not t.executed]


def _failed_tests_on_verified(snapshot: ProjectSnapshot) -> List[str]:
    gaps = []
    for r in snapshot.requirements:
        if r.status != "Verified":
            continue
        for t in _tests_of(snapshot, r):
            if t.status == "Failed":
                gaps.append(f"Test case '{t.id}' fails for Verified requirement '{r.id}'.")
    return gaps


def _untraced_cis(snapshot: ProjectSnapshot) -> List[str]:
    return [f"Configuration item '{ci.id}' is not traced to a requirement or issue."
            for ci in snapshot.configuration_items if not _is_traced(snapshot, ci)]


def _retired_cis_in_use(snapshot: ProjectSnapshot) -> List[str]:
    gaps = []
    for ci in snapshot.configuration_items:
        if ci.status not in ("Deprecated", "Retired"):
            continue
        open_issues = [i for i in snapshot.linked(ci.ref, LinkKind.ISSUE_CONFIGURATION_ITEM)
                       if i.active and i.state == "open"]
        if open_issues:
            gaps.append(f"Configuration item '{ci.id}' is {ci.status} but has "
                        f"{len(open_issues)} open issue(s).")
    return gaps


def _untraced_issues(snapshot: ProjectSnapshot) -> List[str]:
    return [f"Issue #{i.number} is not linked to any requirement."
            for i in snapshot.active_issues
            if not snapshot.neighbors(i.ref, LinkKind.REQUIREMENT_ISSUE)]


def _stale_issue_links(snapshot: ProjectSnapshot) -> List[str]:
    gaps = []
    for issue in snapshot.issues:
        if not issue.active and snapshot.neighbors(issue.ref):
            gaps.append(f"Issue #{issue.number} no longer exists upstream but is still linked.")
    return gaps


def _unlinked_risks(snapshot: ProjectSnapshot) -> List[str]:
    return [f"Risk '{r.id}' is not linked to any requirement."
            for r in snapshot.risks
            if not snapshot.neighbors(r.ref, LinkKind.REQUIREMENT_RISK)]


def _open_high_exposure_risks(snapshot: ProjectSnapshot) -> List[str]:
    return [f"Risk '{r.id}' is open with high probability and high impact."
            for r in snapshot.risks if r.is_open and r.high_exposure]


def _proposed_high_priority(snapshot: ProjectSnapshot) -> List[str]:
    return [f"High-priority requirement '{r.id}' is still Proposed."
            for r in snapshot.requirements if r.priority == "High" and r.status == "Proposed"]


def _incomplete_sections(snapshot: ProjectSnapshot) -> List[str]:
    gaps = []
    for doc in snapshot.documents:
        for section in doc.walk():
            if len(section.description.strip()) <= MIN_SECTION_DESCRIPTION:
                gaps.append(f"Section '{doc.title} -> {section.title}' is incomplete.")
    return gaps


# ---------------------------------------------------------------------------
# Taxonomy
# ---------------------------------------------------------------------------

PROCESS_AREAS: Tuple[ProcessArea, ...] = (
    # Level 1
    ProcessArea(
        id="REQM", name="Requirements Management", level=1,
        applicable=lambda s: bool(s.requirements),
        evidence_rules=(
            EvidenceRule("Requirements are traced to test cases", 4,
                         _at_least("requirements",
                                   lambda s, r: bool(_tests_of(s, r)),
                                   SATISFACTION_THRESHOLD,
                                   "of requirements have test case traceability")),
            EvidenceRule("Requirements specification is documented", 1,
                         _has_section("requirement")),
        ),
        gap_rules=(
            GapRule(_untested_requirements),
            GapRule(_verified_without_passing_test, blocking=True),
        ),
    ),
    ProcessArea(
        id="VER", name="Verification", level=1,
        applicable=lambda s: bool(s.test_cases),
        evidence_rules=(
            EvidenceRule("Test cases have been executed", 2,
                         _at_least("test_cases", lambda s, t: t.executed,
                                   SATISFACTION_THRESHOLD, "of test cases executed")),
            EvidenceRule("Executed tests pass", 2, _pass_rate(SATISFACTION_THRESHOLD)),
            EvidenceRule("Test cases are linked to requirements", 2,
                         _all_of("test_cases",
                                 lambda s, t: bool(s.neighbors(t.ref, LinkKind.REQUIREMENT_TEST_CASE)),
                                 "of test cases linked to requirements")),
            EvidenceRule("Acceptance scenarios are written in Gherkin", 1, _any_gherkin),
        ),
        gap_rules=(
            GapRule(_unlinked_tests),
            GapRule(_unexecuted_tests),
            GapRule(_failed_tests_on_verified, blocking=True),
        ),
    ),
    # Level 2
    ProcessArea(
        id="PP", name="Project Planning", level=2,
        applicable=lambda s: bool(s.requirements or s.documents),
        evidence_rules=(
            EvidenceRule("Project plan is documented", 3, _has_section("plan")),
            EvidenceRule("Project documents are substantially complete", 2, _documents_complete),
            EvidenceRule("Requirements inform planning", 1, _count("requirements", "requirement(s)")),
            EvidenceRule("Risks are identified", 1, _count("risks", "risk(s) identified")),
        ),
        gap_rules=(GapRule(_incomplete_sections),),
    ),
    ProcessArea(
        id="CM", name="Configuration Management", level=2,
        applicable=lambda s: bool(s.configuration_items),
        evidence_rules=(
            EvidenceRule("Configuration items are tracked", 2,
                         _count("configuration_items", "configuration item(s) tracked")),
            EvidenceRule("A baseline is established", 2, _any_baseline_ci),
            EvidenceRule("Configuration items are traced", 2,
                         _all_of("configuration_items", _is_traced,
                                 "of configuration items traced")),
            EvidenceRule("Configuration management plan is documented", 1,
                         _has_section("configuration")),
        ),
        gap_rules=(
            GapRule(_untraced_cis),
            GapRule(_retired_cis_in_use, blocking=True),
        ),
    ),
    ProcessArea(
        id="MA", name="Measurement and Analysis", level=2,
        applicable=lambda s: bool(s.issues) or any(t.executed for t in s.test_cases),
        evidence_rules=(
            EvidenceRule("Test results are recorded", 2,
                         _at_least("test_cases", lambda s, t: t.executed, 1,
                                   "of test cases have recorded results")),
            EvidenceRule("Issues are tracked", 1,
                         lambda s: (bool(s.active_issues),
                                    f"{len(s.active_issues)} active issue(s)")),
            EvidenceRule("Issues are traced to requirements", 2,
                         lambda s: (bool(s.active_issues) and not _untraced_issues(s),
                                    f"{len(s.active_issues) - len(_untraced_issues(s))} of "
                                    f"{len(s.active_issues)} active issue(s) traced")),
            EvidenceRule("Measurement objectives are documented", 1,
                         _has_section("measurement", "metric")),
        ),
        gap_rules=(
            GapRule(_untraced_issues),
            GapRule(_stale_issue_links),
        ),
    ),
    # Level 3
    ProcessArea(
        id="RD", name="Requirements Development", level=3,
        applicable=lambda s: bool(s.requirements),
        evidence_rules=(
            EvidenceRule("Requirements have progressed past Proposed", 2,
                         _at_least("requirements", lambda s, r: r.status != "Proposed",
                                   SATISFACTION_THRESHOLD, "of requirements beyond Proposed")),
            EvidenceRule("Requirements are allocated to configuration items", 2,
                         _at_least("requirements",
                                   lambda s, r: bool(s.neighbors(
                                       r.ref, LinkKind.REQUIREMENT_CONFIGURATION_ITEM)),
                                   SATISFACTION_THRESHOLD,
                                   "of requirements allocated to configuration items")),
            EvidenceRule("Non-functional requirements are documented", 1,
                         _has_section("non-functional")),
        ),
        gap_rules=(GapRule(_proposed_high_priority),),
    ),
    ProcessArea(
        id="TS", name="Technical Solution", level=3,
        applicable=lambda s: bool(s.configuration_items),
        evidence_rules=(
            EvidenceRule("Configuration items realize requirements", 3,
                         _all_of("configuration_items",
                                 lambda s, ci: bool(s.neighbors(
                                     ci.ref, LinkKind.REQUIREMENT_CONFIGURATION_ITEM)),
                                 "of configuration items realize a requirement")),
            EvidenceRule("Requirements are implemented", 2,
                         _at_least("requirements",
                                   lambda s, r: r.status in ("Implemented", "Verified"),
                                   50, "of requirements implemented")),
            EvidenceRule("Design is documented", 1, _has_section("design", "architecture")),
            EvidenceRule("Security is addressed in the design", 1, _has_section("security")),
        ),
    ),
    ProcessArea(
        id="VAL", name="Validation", level=3,
        applicable=lambda s: bool(s.test_cases) and bool(s.requirements),
        evidence_rules=(
            EvidenceRule("Every requirement has a passing test", 3,
                         _all_of("requirements",
                                 lambda s, r: any(t.passed for t in _tests_of(s, r)),
                                 "of requirements validated by a passing test")),
            EvidenceRule("High-priority requirements are validated", 2, _high_priority_validated),
            EvidenceRule("Acceptance scenarios are defined", 1,
                         _at_least("test_cases", lambda s, t: bool(t.gherkin), 50,
                                   "of test cases define acceptance scenarios")),
        ),
        gap_rules=(GapRule(_failed_tests_on_verified, blocking=True),),
    ),
    ProcessArea(
        id="RSKM", name="Risk Management", level=3,
        applicable=lambda s: bool(s.risks),
        evidence_rules=(
            EvidenceRule("Risks are linked to requirements", 2,
                         _all_of("risks",
                                 lambda s, r: bool(s.neighbors(r.ref, LinkKind.REQUIREMENT_RISK)),
                                 "of risks linked to requirements")),
            EvidenceRule("Risks are being mitigated", 2,
                         _at_least("risks", lambda s, r: not r.is_open, 50,
                                   "of risks mitigated or closed")),
            EvidenceRule("Risk management approach is documented", 1, _has_section("risk")),
        ),
        gap_rules=(
            GapRule(_unlinked_risks),
            GapRule(_open_high_exposure_risks, blocking=True),
        ),
    ),
    # Level 4
    ProcessArea(
        id="QPM", name="Quantitative Project Management", level=4,
        applicable=lambda s: bool(s.requirements) and any(t.executed for t in s.test_cases),
        evidence_rules=(
            EvidenceRule("Test pass rate meets the quantitative objective", 2, _pass_rate(95)),
            EvidenceRule("Requirement test coverage meets the quantitative objective", 2,
                         _at_least("requirements", lambda s, r: bool(_tests_of(s, r)), 95,
                                   "of requirements covered by tests")),
            EvidenceRule("All test cases are executed", 1,
                         _all_of("test_cases", lambda s, t: t.executed,
                                 "of test cases executed")),
            EvidenceRule("Quality objectives are documented", 1, _has_section("quality")),
        ),
        gap_rules=(GapRule(_unexecuted_tests),),
    ),
    # Level 5
    ProcessArea(
        id="CAR", name="Causal Analysis and Resolution", level=5,
        applicable=lambda s: bool(s.issues) or bool(s.risks),
        evidence_rules=(
            EvidenceRule("Closed issues are traced to their cause", 2, _closed_issues_traced),
            EvidenceRule("Resolved risks are tied to resolving issues", 2, _mitigations_tracked),
            EvidenceRule("No tests are failing", 1, _no_failed_tests),
            EvidenceRule("Lessons learned are documented", 1,
                         _has_section("lessons", "root cause")),
        ),
        gap_rules=(GapRule(_stale_issue_links),),
    ),
)

MAX_LEVEL = max(pa.level for pa in PROCESS_AREAS)

PROCESS_AREA_NAMES = {pa.id: pa.name for pa in PROCESS_AREAS}


def areas_for_level(level: int) -> Tuple[ProcessArea, ...]:
    return tuple(pa for pa in PROCESS_AREAS if pa.level == level)


def get_process_area(process_area_id: str) -> ProcessArea:
    for pa in PROCESS_AREAS:
        if pa.id == process_area_id:
            return pa
    raise KeyError(process_area_id)
