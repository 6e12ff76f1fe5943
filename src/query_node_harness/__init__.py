"""Integration-test harness for a Substrate chain and its GraphQL query node."""

__version__ = "0.1.0"
