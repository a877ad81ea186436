#!/usr/bin/env python3
# CUI // SP-CTI
"""CMMI-style maturity scoring over project snapshots.

Usage:
    from assessment_engine.maturity.maturity_scorer import assess
    assessment = assess(session.snapshot())
"""
