#!/usr/bin/env python3
# CUI // SP-CTI
"""Append-only, hash-chained audit ledger with SQLite persistence and queries."""
