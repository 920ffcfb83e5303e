"""authflow: a small Flask login flow with evolution-managed schema and a synthetic-request test harness."""

__version__ = "1.0.0"
