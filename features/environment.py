# [TEMPLATE: CUI // SP-CTI]
"""Behave environment configuration for assessment engine BDD tests."""

import os
import sys


def before_all(context):
    """Set up global test context."""
    # Ensure project root is in path
    project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)
    context.project_root = project_root


def before_scenario(context, scenario):
    """Set up per-scenario context."""
    context.session = None
    context.snapshot = None
    context.assessment = None
    context.ingest_results = []


def after_scenario(context, scenario):
    """Clean up after each scenario."""
    context.session = None
