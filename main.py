"""
Convenience entrypoint for chatrelay.

Allows running `python main.py serve` in addition to `python -m chatrelay serve`.
"""

from chatrelay.cli import main


if __name__ == "__main__":
    main()
