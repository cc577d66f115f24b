"""
SQL Tutor - an interactive SQL learning notebook.

Queries, results, notes and diagrams are kept per session in a flat
markdown transcript that can be replayed, paged and edited.
"""

__version__ = "0.1.0"
