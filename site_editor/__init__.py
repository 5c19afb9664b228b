"""Site image editor: click an image on a static site, replace it, commit it."""

__version__ = "0.1.0"
