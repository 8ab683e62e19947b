"""CLI entry point for pixelift.cli module.

Enables execution via: python -m pixelift.cli (runs photo recovery)
"""

from pixelift.cli.recover_photos import main

if __name__ == "__main__":
    main()
