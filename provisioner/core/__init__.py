"""Core — models, engine, reliability, and services."""
