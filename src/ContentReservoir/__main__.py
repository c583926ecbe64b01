"""Allow ``python -m ContentReservoir``."""

from .cli import main

if __name__ == "__main__":
    main()
