"""Security health checks for source repositories: a GitHub client and pinned-dependency analysis."""

__version__ = "0.1.0"