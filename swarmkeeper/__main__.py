"""Allow `python -m swarmkeeper`."""

from __future__ import annotations

from swarmkeeper.cli.main import main

if __name__ == "__main__":
    main()
