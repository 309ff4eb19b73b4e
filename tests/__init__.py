"""
Test suite for navfund

Contains:
- tests/unit/   : Unit tests for individual modules
- tests/fakes.py: In-memory feed source, venue and token primitive
"""
