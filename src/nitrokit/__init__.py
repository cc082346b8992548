"""Nitrokit: developer automation for releases, dependencies, quality checks and i18n."""

__version__ = "0.1.0"
