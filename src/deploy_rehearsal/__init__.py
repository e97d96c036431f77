"""
deploy-rehearsal — rehearse pull-request merges before deploying.

Purpose
- Simulate merging a stack of open pull requests with GitHub's merge, squash, or rebase
  method inside disposable clones, and report the commits each merge would create.

Import boundary
- No side effects at import time (no config loading, no logging setup).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
