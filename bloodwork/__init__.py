"""Blood-test document processing and health analysis service."""

__version__ = "0.1.0"
