"""Shell adapters — command execution and filesystem writes."""
