"""Module entry-point for ``python -m bpfvlog``."""

from .engine import main


def _run() -> int:
    import sys

    return main(sys.argv[1:])


if __name__ == "__main__":
    raise SystemExit(_run())
