"""Incremental OHLC bar cache between charting clients and upstream quote providers."""
