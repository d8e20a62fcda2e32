"""
Test suite for the repository bundle exporter.

Test Categories:
- Unit tests: traversal, filtering, container building, manifests, clients
- Integration tests: full exports against in-memory repository and index fakes
- Edge case tests: size limits, per-item failures, splitting
"""
