"""Reporting backend for the school quiz platform."""

__version__ = "0.1.0"
