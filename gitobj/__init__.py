"""Git tree and tag objects, object storage, and packfile reading."""

__version__ = "2.0.0"