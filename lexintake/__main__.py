"""
Allow running lexintake as a module: ``python -m lexintake``.

This delegates to the CLI entry point so that both
``lexintake`` (console script) and ``python -m lexintake``
behave identically.
"""

from lexintake.cli import main

if __name__ == "__main__":
    main()
