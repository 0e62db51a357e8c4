# -*- coding: utf-8 -*-
"""
Enrichment package for address resolution.

Contains street_normalizer (directory abbreviation expansion), street_resolver
(inverted index search plus Levenshtein rerank) and geocoder (address point
lookup for resolved addresses).
"""
