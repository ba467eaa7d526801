"""quickget - download operating system images and generate quickemu configs.

This package resolves an (OS, release, edition, architecture) request against
a catalog of acquisition recipes, downloads the matching artifacts, verifies
them where possible, and writes a ready-to-use quickemu VM configuration.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
