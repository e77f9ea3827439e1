"""Entry point for `python -m k0watch`.

Usage:
    python -m k0watch
"""

from __future__ import annotations

import asyncio

from k0watch.app import main

asyncio.run(main())
