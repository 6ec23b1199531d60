"""Write the OpenAPI specification of the Stopboard API to a file.

The spec is generated from the FastAPI app without starting the server, so no
database or upstream feed is contacted.

Usage:
    python scripts/generate_openapi.py [--output openapi.json]
"""

import argparse
import json
import os
from pathlib import Path

# Tracing is irrelevant for spec generation and would warn about a missing endpoint
os.environ["OTEL_ENABLED"] = "false"

from app.main import app  # noqa: E402


def main() -> None:
    """Generate the OpenAPI document."""
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--output",
        type=Path,
        default=Path(__file__).parent.parent / "openapi.json",
        help="Destination file (default: openapi.json at the repository root)",
    )
    args = parser.parse_args()

    spec = app.openapi()
    args.output.write_text(json.dumps(spec, indent=2) + "\n")
    print(f"Generated {args.output}")
    print(f"  Title:   {spec.get('info', {}).get('title')}")
    print(f"  Version: {spec.get('info', {}).get('version')}")
    print(f"  Paths:   {len(spec.get('paths', {}))}")


if __name__ == "__main__":
    main()
