#!/usr/bin/env python3
"""
Write the ELM CDR OpenAPI schema to disk without starting a server.

Usage:
    python scripts/export_openapi.py                         # docs/openapi.json
    python scripts/export_openapi.py -o build/openapi.json
    python scripts/export_openapi.py --prefix /api/get-cdr
"""

import argparse
import json
from pathlib import Path

from elm_cdr.api import create_app


DEFAULT_OUTPUT = Path(__file__).resolve().parent.parent / "docs" / "openapi.json"


def export_openapi(output: Path = DEFAULT_OUTPUT, prefix: str = "") -> dict:
    """Build the app with the given route prefix and dump its schema to `output`."""
    schema = create_app(prefix=prefix).openapi()

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(schema, indent=2) + "\n")
    return schema


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("-o", "--output", type=Path, default=DEFAULT_OUTPUT)
    parser.add_argument("--prefix", default="", help="Mount path for the retrieval routes")
    args = parser.parse_args()

    schema = export_openapi(args.output, args.prefix)

    print(f"Wrote {args.output} ({schema['info']['title']} {schema['info']['version']})")
    for path, operations in sorted(schema["paths"].items()):
        for method in operations:
            print(f"  {method.upper():6s} {path}")


if __name__ == "__main__":
    main()
