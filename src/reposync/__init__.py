"""Keep a local directory and a GitHub branch in step without a git client."""

__version__ = "1.0.0"
