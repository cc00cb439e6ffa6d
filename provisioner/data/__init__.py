"""Packaged profile data."""
