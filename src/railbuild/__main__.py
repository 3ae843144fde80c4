"""Allow running railbuild as `python -m railbuild`."""

from .cli import main

if __name__ == "__main__":
    main()
