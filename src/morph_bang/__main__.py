"""Allow running as ``python -m morph_bang``."""

from morph_bang.cli import main

main()
