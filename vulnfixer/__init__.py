"""VulnFixer: open pull requests that upgrade vulnerable dependencies."""

__version__ = "0.1.0"
