"""hostforge - provision remote hosts into TLS-secured container engine hosts."""

__version__ = '0.1.0'
