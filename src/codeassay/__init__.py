"""CodeAssay: static code quality assessment across language ecosystems."""

__version__ = "0.1.0"
