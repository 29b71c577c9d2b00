"""
Spotify chat playlist builder.
Chat with an LLM about the playlist you want, then have it created on Spotify.
"""

__version__ = '0.1.0'
