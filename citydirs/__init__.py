# -*- coding: utf-8 -*-
"""
City directories pipeline.

Turns OCR'd historical city directory volumes into person and address graph
objects. Subpackages:

    ingestion   - volume table, archive downloads, streaming archive reading
    processing  - column detection, line records, entry parser bridge
    enrichment  - street normalization, fuzzy street resolution, geocoding
    graph       - graph object construction and sinks
    utils       - config, logging, errors, I/O, data structures

The stages are sequenced by citydirs.pipeline.
"""

__version__ = "0.1.0"
