"""Reliability — retry controller and cancellation."""
