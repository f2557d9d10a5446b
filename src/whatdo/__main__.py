"""Allow ``python -m whatdo``."""

from whatdo.cli import main

main()
