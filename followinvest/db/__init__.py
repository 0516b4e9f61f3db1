"""FollowInvest database layer.

Provides DuckDB-based storage for cached market data: exchange rates
and daily security prices. Holdings and accounts live in the outer
application's database and are never written here.
"""
