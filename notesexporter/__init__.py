"""Export Apple Notes to a portable ZIP archive of documents."""

__version__ = "0.2.0"
