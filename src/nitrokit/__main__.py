"""Allow ``python -m nitrokit``."""

from nitrokit.cli import main

main()
