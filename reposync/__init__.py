"""reposync — git synchronization panel for a host application."""

__version__ = "0.3.0"
