# -*- coding: utf-8 -*-
"""
Ingestion package for city directory volumes.

Contains manifest (volume table parsing and directories.json I/O), downloader
(concurrent archive downloads) and archive_extractor (streaming tar.gz reader
yielding hOCR page records).
"""
