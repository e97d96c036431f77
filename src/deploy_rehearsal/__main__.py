"""Module entrypoint for ``python -m deploy_rehearsal``."""

from __future__ import annotations

from deploy_rehearsal.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
