"""A small distributed document store: name server, storage server and interactive client."""

__version__ = "0.1.0"

__all__ = ["__version__"]