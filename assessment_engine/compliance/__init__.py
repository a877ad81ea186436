# CUI // SP-CTI
"""Compliance snapshots and auditor export packages."""
