"""Run the init pipeline CLI from a checkout (same as `python -m init_pipeline`)."""

from __future__ import annotations

from init_pipeline.__main__ import main


if __name__ == "__main__":
    raise SystemExit(main())
