#!/usr/bin/env python
"""
Build pipeline - imports the seed price list into the record store and
runs the pricing regression tests.

Usage:
    python scripts/build_all.py
"""
import json
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from quotation_tool.config.settings import configure_logging, get_settings
from quotation_tool.persistence.remote import JsonFileRemoteStore, OpState
from quotation_tool.services.workspace import QuotationWorkspace


def main():
    settings = get_settings()
    configure_logging(settings.log_level)

    print("=" * 60)
    print("QUOTATION TOOL BUILD PIPELINE")
    print("=" * 60)
    print()

    print("[1/2] Importing seed catalog...")
    workspace = QuotationWorkspace.create(settings, JsonFileRemoteStore(settings.store_dir))
    workspace.load()
    if len(workspace.catalog):
        print(f"  Store already holds {len(workspace.catalog)} items, skipping import")
        report = None
    else:
        report = workspace.import_catalog(settings.seed_catalog)
        if report["status"] != "success":
            print("\n❌ BUILD FAILED")
            for error in report["errors"]:
                print(f"  ERROR: {error}")
            sys.exit(1)

    ops = workspace.remote.drain()
    failed = [op for op in ops if op.state == OpState.FAILED]
    if failed:
        print(f"\n❌ {len(failed)} records could not be written to {settings.store_dir}")
        sys.exit(1)

    if report is not None:
        settings.store_dir.mkdir(parents=True, exist_ok=True)
        report_path = settings.store_dir / 'import_report.json'
        with open(report_path, 'w') as f:
            json.dump(report, f, indent=2)
        print(f"  Import report saved to: {report_path}")

    print()
    print("[2/2] Running golden tests...")

    import subprocess
    test_result = subprocess.run(
        [sys.executable, '-m', 'pytest', 'tests/test_golden_cases.py', '-v', '--tb=short'],
        cwd=Path(__file__).parent.parent
    )

    if test_result.returncode != 0:
        print("\n❌ TESTS FAILED")
        sys.exit(1)

    print()
    print("=" * 60)
    print("✅ BUILD COMPLETE")
    print("=" * 60)
    print()
    print("Summary:")
    print(f"  Catalog items: {len(workspace.catalog)}")
    print(f"  Categories: {', '.join(workspace.catalog.categories())}")
    if report is not None:
        print(f"  Rows read: {report['metrics']['rows_read']}")
        print(f"  Rows dropped: {report['metrics']['rows_dropped']}")
        print(f"  Warnings: {len(report['warnings'])}")
        for warning in report['warnings']:
            print(f"    {warning}")


if __name__ == "__main__":
    main()
