"""Test configuration for ensuring top-level module imports."""

import os
import sys

# Add the repository root (the directory containing this file) to ``sys.path``
# so ``main``, ``models`` and the ``routers`` package import the same way they
# do when the app is started from the repository root.
ROOT_DIR = os.path.abspath(os.path.dirname(__file__))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# ``main`` builds a default app at import time; keep it off Postgres.
os.environ.setdefault("DATABASE_URL", "sqlite://")
