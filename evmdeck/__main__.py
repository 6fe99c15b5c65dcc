"""Console entrypoint bridging to :mod:`evmdeck.app`."""

from __future__ import annotations

from typing import Optional, Sequence

from .app import main as app_main


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Delegate execution to :func:`evmdeck.app.main`."""

    app_main(argv)


if __name__ == "__main__":
    main()
