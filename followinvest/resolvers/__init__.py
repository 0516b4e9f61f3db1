"""Cache-then-provider resolvers for exchange rates and security prices."""
