"""Log lines, a slot-based rate limiter, journald export decoding and Kubernetes metadata."""

__version__ = "0.1.0"