from __future__ import annotations

from .bridge import main

if __name__ == "__main__":
    raise SystemExit(main())
