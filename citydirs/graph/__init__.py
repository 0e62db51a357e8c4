# -*- coding: utf-8 -*-
"""
Graph package for the transform stage.

Contains transform (parsed lines to Person, relation and log objects) and
graph_writer (NDJSON object log and Neo4j sinks).
"""
