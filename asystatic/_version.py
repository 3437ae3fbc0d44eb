
__version__ = "0.1.0"
__banner__ = \
"""
# asystatic %s
# Static files over HTTP, the asyncio way
""" % __version__
