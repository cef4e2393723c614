from . import detect, provision

__all__ = ['detect', 'provision']
