"""Security desktop provisioner — idempotent, retryable workstation setup."""

__version__ = "0.1.0"
