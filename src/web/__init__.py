"""
Web Module
==========

Flask-based board and training controls.

Components:
    server.py    - Flask + SocketIO server
    templates/   - HTML templates
"""

from .server import GameServer

__all__ = ['GameServer']
