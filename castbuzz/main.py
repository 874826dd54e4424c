"""Development entry point: ``python castbuzz/main.py [--check-imports]``."""

import os
import sys
from pathlib import Path

if __package__ in {None, ""}:
    sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from castbuzz.startup_check import verify_imports  # noqa: E402

if "--check-imports" in sys.argv:
    verify_imports()
    print("Import check successful.")
    sys.exit(0)

from castbuzz import create_app  # noqa: E402

app = create_app()

if __name__ == "__main__":
    app.run(
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8080")),
        debug=os.getenv("ENV") == "development",
    )
