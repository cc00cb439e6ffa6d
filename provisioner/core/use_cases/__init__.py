"""Use cases — end-to-end flows behind the CLI commands."""
