"""Configuration — profile loading."""
