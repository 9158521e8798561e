"""
Ingestion side of the knowledge base.

This package is responsible for:
- Loading front-matter markdown documents from the corpus directory
- Settings shared by the build and query entrypoints
- Providing a CLI to build the store and query it
"""

