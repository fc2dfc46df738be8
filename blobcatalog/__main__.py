"""Module entrypoint for ``python -m blobcatalog``."""

from .cli import main


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
