"""bucketdrop: password-keyed file drop with bearer download links."""

__version__ = "0.1.0"
