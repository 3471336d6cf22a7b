from __future__ import annotations

from gitlin.cli import main


if __name__ == "__main__":
    main()
