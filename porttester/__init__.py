"""Outbound Port Tester - local NAT outbound port restriction testing tool."""

__version__ = "0.1.2"
