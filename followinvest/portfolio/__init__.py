"""Portfolio computations over resolved market data.

Performance (gain/loss), currency conversion of holdings, dashboard
aggregates, and the short-lived cache for assembled views.
"""
