"""nodewarden: provisions a host for the Pi node client and keeps it observed."""

__version__ = "0.3.0"
