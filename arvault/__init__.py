"""Asset upload and access-control service for 3D/AR content."""

__version__ = "0.1.0"
