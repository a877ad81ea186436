#!/usr/bin/env python3
# CUI // SP-CTI
"""Project state: artifact store, link graph, session write path and import."""
