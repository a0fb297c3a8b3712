"""
graphsub test suite.

This package contains:
- unit/: Unit tests for filters, authorization, delivery, dispatch, config and CLI
"""
