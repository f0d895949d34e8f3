# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Allow running docdriver as ``python -m docdriver``."""

from .server import main

main()
