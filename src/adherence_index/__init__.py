"""
Philadelphia Cancer-Prevention Adherence Index

Compares Philadelphia neighborhoods with the citywide distribution of
cancer-prevention guideline measures and summarises them in two composite
indices: lifestyle guidelines and preventive-service guidelines.

Core modules:
    - loader, reshape: Read the raw inputs and build the long measure table
    - stats_utils: Tukey five-number summary, ternary classification, z-scores
    - index_builder: The three-stage index computation
    - reporting: Analysis-ready tables for maps and manuscript tables
    - paths, logging_utils, io_utils, schemas, qa, hashing: Pipeline plumbing
"""

__version__ = "0.1.0"
__author__ = "Philadelphia Adherence Index Team"
