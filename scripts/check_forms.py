#!/usr/bin/env python3
"""CLI script to check form definitions before deploying them."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Ensure the project source is importable when running the script directly.
_project_root = Path(__file__).resolve().parent.parent
_src = _project_root / "src"
if str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from stepform.core.config import Settings  # noqa: E402
from stepform.forms.loader import (  # noqa: E402
    FORM_SUFFIXES,
    FormConfigError,
    check_dependencies,
    load_form_config,
)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Load form definitions and report configuration problems."
    )
    parser.add_argument(
        "paths",
        nargs="*",
        help="Form definition files or directories. Defaults to the configured forms directory.",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Treat references to unknown fields as errors.",
    )
    return parser.parse_args()


def _collect(paths: list[str]) -> list[Path]:
    files: list[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            files.extend(sorted(p for p in path.iterdir() if p.suffix in FORM_SUFFIXES))
        else:
            files.append(path)
    return files


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.ERROR, format="%(levelname)s %(name)s: %(message)s")

    paths = args.paths or [str(_project_root / Settings().forms.forms_dir)]
    files = _collect(paths)
    if not files:
        print("No form definitions found.")
        return 1

    failures = 0
    for path in files:
        try:
            config = load_form_config(path)
        except (FormConfigError, OSError, ValueError) as e:
            print(f"FAIL {path}: {e}")
            failures += 1
            continue

        problems = check_dependencies(config)
        fields = sum(1 for _ in config.iter_fields())
        if problems and args.strict:
            print(f"FAIL {path}:")
            failures += 1
        else:
            print(f"OK   {path}: {config.form_id!r}, {len(config.steps)} steps, {fields} fields")
        for problem in problems:
            print(f"  - {problem}")

    print(f"\n{len(files) - failures}/{len(files)} form definitions passed.")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
