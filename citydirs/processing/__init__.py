# -*- coding: utf-8 -*-
"""
Processing package for the parse stage.

Contains column_detector (hOCR column splitting contract and default
implementation), line_processor (pages to ordered line records) and
entry_parser (FIFO-correlated bridge to the external entry parser process).
"""
