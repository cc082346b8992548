"""Command implementations behind the nitrokit CLI."""
