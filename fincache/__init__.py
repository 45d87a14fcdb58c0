"""
fincache - Client-side data layer for personal finance records

A stale-while-revalidate cache, resource hydration and mutation
protocols, and the aggregation engine behind the dashboard of a
personal-finance record-keeping application.

DESIGN PRINCIPLES:
1. The cache is an optimization, never a source of truth
2. Never show a spinner when a cached value exists
3. An expired session ends the whole session, once
4. Aggregates are always recomputed from the full record lists
5. Backend and storage are injected and swappable
"""

__version__ = "1.0.0"
__author__ = "fincache Team"
