"""
maccel-build
============

Spec generation and RPM coordination for bundling the maccel mouse
acceleration driver into a Fedora Atomic image.
"""

__version__ = "1.0.0"
