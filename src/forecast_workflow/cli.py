"""Console script shim.

The CLI is implemented in `forecast_workflow.main`.
"""

from __future__ import annotations

from forecast_workflow.main import main

__all__ = ["main"]


if __name__ == "__main__":
    raise SystemExit(main())
