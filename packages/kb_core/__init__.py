"""
Core knowledge base logic.

This package contains:
- Data models for documents, chunks and query results
- Heading/paragraph chunking of markdown bodies
- The SQLite FTS5 + relational store and its build pipeline
- The read-only query API and its tool dispatch
"""

