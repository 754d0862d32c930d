"""
REST API for the face attendance system.
"""

from .api_server import create_app, run_api_server

__all__ = ['create_app', 'run_api_server']
