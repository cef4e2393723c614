"""
Host management modules.
"""
from .ssh import SSHConnection

__all__ = [
    'SSHConnection',
]
