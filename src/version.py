# src/version.py — v1
"""Package version, used for --version and the plugin_version manifest field."""

__version__ = "0.4.0"
