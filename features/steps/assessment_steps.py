# [TEMPLATE: CUI // SP-CTI]
"""Step definitions for ledger, maturity and compliance BDD scenarios."""

import sys
from dataclasses import replace
from pathlib import Path

from behave import given, then, when

sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from assessment_engine.audit.audit_ledger import AuditLedger  # noqa: E402
from assessment_engine.compliance.compliance_reporter import ComplianceReporter  # noqa: E402
from assessment_engine.project.project_session import ProjectSession  # noqa: E402
from assessment_engine.schemas.artifacts import NodeRef  # noqa: E402


def _check(result):
    assert result.ok, f"Command failed: {result.error}"
    return result


@given('an empty project')
def step_empty_project(context):
    """Start a session with its own in-memory ledger."""
    context.session = ProjectSession(ledger=AuditLedger())


@given('a requirement "{req_id}" described as "{description}"')
def step_requirement(context, req_id, description):
    _check(context.session.create("requirement", {"id": req_id, "description": description}))


@given('a test case "{tc_id}" with status "{status}"')
def step_test_case(context, tc_id, status):
    _check(context.session.create("test_case", {"id": tc_id, "description": f"Check {tc_id}",
                                                "status": status}))


@given('"{a}" is linked to "{b}"')
def step_link(context, a, b):
    _check(context.session.link(a, b))


@given('ledger entry {index:d} is rewritten outside the ledger')
def step_tamper(context, index):
    """Edit a stored entry without recomputing its hashes."""
    records = context.session.ledger._records
    record = records[index - 1]
    records[index - 1] = replace(record, entry=replace(record.entry, summary="rewritten"))


@when('I take a compliance snapshot')
def step_compliance_snapshot(context):
    context.snapshot = ComplianceReporter(context.session).snapshot()


@when('I assess the project')
def step_assess(context):
    context.assessment = context.session.assess()


@when('I delete requirement "{req_id}"')
def step_delete_requirement(context, req_id):
    _check(context.session.delete("requirement", req_id))


@when('I ingest commit "{sha}" made at "{timestamp}"')
def step_ingest(context, sha, timestamp):
    result = _check(context.session.ingest_external([{
        "external_id": sha, "timestamp": timestamp, "author_name": "dev",
        "summary": "Commit from feature", "raw_payload": {"sha": sha},
    }]))
    context.ingest_results = result.value


@then('the compliance status is "{status}"')
def step_compliance_status(context, status):
    assert context.snapshot.overall_status == status, \
        f"Expected {status}, got {context.snapshot.overall_status}"


@then('the integrity score is {score:g}')
def step_integrity_score(context, score):
    assert context.snapshot.metrics["integrity_score"] == score


@then('the ledger holds {count:d} entries')
def step_ledger_count(context, count):
    assert len(context.session.ledger_entries()) == count


@then('the ledger chain is intact')
def step_chain_intact(context):
    assert context.session.ledger.verify_chain().intact


@then('the maturity level is {level:d}')
def step_maturity_level(context, level):
    assessment = context.assessment or context.session.assess()
    assert assessment.maturity_level == level, \
        f"Expected level {level}, got {assessment.maturity_level}"


@then('process area "{pa_id}" scores {score:d}')
def step_process_area_score(context, pa_id, score):
    assert context.assessment.get(pa_id).score == score


@then('"{node}" has no links')
def step_no_links(context, node):
    assert context.session.snapshot().neighbors(NodeRef.parse(node)) == ()


@then('the newest ledger entry is "{event_type}"')
def step_newest_entry(context, event_type):
    assert context.session.history()[0].event_type == event_type


@then('the last ingestion status is "{status}"')
def step_ingestion_status(context, status):
    assert context.ingest_results[-1].status == status
