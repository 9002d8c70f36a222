"""Console script shim; the CLI lives in `github_search_harvester.main`."""

from __future__ import annotations

from github_search_harvester.main import main

__all__ = ["main"]


if __name__ == "__main__":
    raise SystemExit(main())
