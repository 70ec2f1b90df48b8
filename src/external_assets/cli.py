from __future__ import annotations

import argparse
import logging
from pathlib import Path

from .errors import ManifestError
from .installer import PackageRun, install_package, install_project
from .resolver import Outcome


def safe_print(msg: str) -> None:
    # Avoid UnicodeEncodeError on Windows CI/console encodings
    try:
        print(msg)
    except UnicodeEncodeError:
        print(msg.encode("utf-8", errors="replace").decode("utf-8"))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="external-assets",
        description=(
            "External Assets Installer: download the scripts, stylesheets, fonts and "
            "archives declared under extra.external-assets in each package's composer.json."
        ),
    )
    parser.add_argument(
        "package_dirs",
        nargs="*",
        metavar="PACKAGE_DIR",
        help="Package directory containing a composer.json",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Download every asset again, even if it is already present",
    )
    parser.add_argument(
        "--installed",
        action="store_true",
        help="Treat each directory as a project root and also process vendor/composer/installed.json",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug details")
    parser.add_argument("--version", action="store_true", help="Print version")
    return parser


def _report(run: PackageRun) -> tuple[int, int, int]:
    installed = skipped = failed = 0

    if not run.results:
        safe_print(f"{run.name}: no external assets declared")
        return installed, skipped, failed

    safe_print(f"{run.name}:")
    for r in run.results:
        if r.outcome is Outcome.INSTALLED:
            installed += 1
            safe_print(f"  Installed: {r.destination}")
        elif r.outcome is Outcome.SKIPPED:
            skipped += 1
            safe_print(f"  Skipped: {r.destination} (already present)")
        else:
            failed += 1
            safe_print(f"  Failed: {r.destination} from {r.source}: {r.reason}")
    return installed, skipped, failed


def main(argv=None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        try:
            from importlib.metadata import version

            safe_print(f"external-assets {version('external-assets')}")
        except Exception:
            safe_print("external-assets (unknown version)")
        return 0

    if not args.package_dirs:
        parser.error("at least one PACKAGE_DIR is required")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    rc = 0
    totals = [0, 0, 0]

    for raw in args.package_dirs:
        package_dir = Path(raw).expanduser().resolve()
        if not package_dir.is_dir():
            safe_print(f"Error: Not a directory: {raw}")
            rc = 2
            continue

        try:
            if args.installed:
                runs = install_project(package_dir, args.force)
            else:
                runs = [install_package(package_dir, args.force)]
        except (ManifestError, ValueError) as e:
            safe_print(f"Error: {e}")
            rc = 2
            continue

        for run in runs:
            for i, n in enumerate(_report(run)):
                totals[i] += n

    safe_print(f"Done: {totals[0]} installed, {totals[1]} skipped, {totals[2]} failed.")
    return rc


if __name__ == "__main__":
    raise SystemExit(main())
