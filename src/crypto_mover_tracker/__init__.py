"""Crypto Mover Tracker - Detect, explain and forecast large crypto price moves."""

__version__ = "0.1.0"
