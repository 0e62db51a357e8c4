# -*- coding: utf-8 -*-
"""
Utilities package shared across the city directories pipeline.

Contains configuration, the exception hierarchy, logging setup, record
dataclasses, deterministic record ids, NDJSON helpers and progress tracking.
"""
