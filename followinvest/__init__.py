"""FollowInvest market-data layer.

Exchange rates and security prices with caching, provider fallback,
heuristic symbol mapping, and gain/loss reporting for the investment
dashboard.
"""

__version__ = "0.1.0"
