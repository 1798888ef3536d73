"""
brb - a full-screen "be right back" terminal overlay.

Shows a countdown, status text and a live Twitch chat feed while the
broadcaster is away, and runs hook commands when it starts and exits.
"""

__version__ = '0.1.1'
