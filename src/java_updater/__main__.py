"""Allow ``python -m java_updater``."""
from __future__ import annotations

from .cli import main

main()
