#!/usr/bin/env python3
# CUI // SP-CTI
"""Process Maturity & Traceability Assessment Engine.

Keeps a project's requirements, test cases, risks, configuration items and
mirrored tracker issues linked, scores them against a CMMI-style process area
taxonomy, and records every change in an append-only, hash-chained audit
ledger that feeds compliance reporting.
"""

__version__ = "0.1.0"
