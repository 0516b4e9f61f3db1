"""Market data providers and symbol mapping.

Provider adapters translate upstream failures into
``followinvest.errors`` so the resolvers can fall back uniformly.
"""
