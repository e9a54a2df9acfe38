"""resin-link: canonical status and control for NanoDLP and Odyssey printers."""

__version__ = "0.1.0"
