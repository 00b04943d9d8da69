"""icaliada: layered configuration and graceful service bootstrap."""

__version__ = "0.1.0"
