"""Punto de entrada: ``python -m salud_log``."""

from __future__ import annotations

from salud_log.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
