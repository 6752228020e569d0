"""Error notices, filters, performance metrics, a resend backlog and middleware for error tracking."""

__version__ = "0.1.0"