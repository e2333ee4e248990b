# scripts/smoke.py
"""
Smoke Test Script for the SavePort round trip.

Usage
-----
1. Round-trip a built-in sample archive through a throwaway store:
    $ uv run python scripts/smoke.py

2. Round-trip an archive produced by a real export:
    $ uv run python scripts/smoke.py --file backups/undertale_indexeddb_2024-05-01.json
"""

import argparse
import asyncio
import json
import logging
import sys
import tempfile
from pathlib import Path

from dotenv import load_dotenv

from saveport.host.files import DirectoryDownloadTrigger
from saveport.host.status import LogStatusReporter
from saveport.pipelines.save_transfer import run_export, run_import
from saveport.store.session import StoreSession

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

SAMPLE_ARCHIVE = {
    "/_savedata/file0": {"data": [70, 114, 105, 115, 107], "type": "binary"},
    "/_savedata/file0_metadata": {"timestamp": "2024-05-01T12:00:00.250Z", "mode": 33206},
    "/_savedata/undertale.ini": {"data": "[General]\nRoom=\"12\"", "type": "binary"},
}


async def round_trip(text: str, workdir: Path) -> int:
    """Import ``text`` into a fresh store, export it again and check every key survived."""
    session = StoreSession.from_settings(store_path=workdir / "store.pickle")
    reporter = LogStatusReporter("saveport.smoke")

    imported = await run_import(session, text, reporter)
    if not imported.ok:
        print(f"❌ Import failed: {imported.message}")
        return 1

    exported = await run_export(session, DirectoryDownloadTrigger(workdir / "out"), reporter)
    if not exported.ok or exported.path is None:
        print(f"❌ Export failed: {exported.message}")
        return 1

    before = json.loads(text)
    after = json.loads(exported.path.read_text(encoding="utf-8"))
    missing = sorted(k for k, v in before.items() if "data" in v and k not in after)
    if missing:
        print(f"❌ Records lost in transit: {missing}")
        return 1

    print(f"✅ Round trip kept all {imported.records} record(s): {exported.path.name}")
    return 0


def main() -> None:
    """Execute the smoke test workflow."""
    parser = argparse.ArgumentParser(description="Run SavePort Smoke Test")
    parser.add_argument("--file", "-f", type=str, help="Archive to round-trip (.json)")
    args = parser.parse_args()

    if args.file:
        path = Path(args.file)
        if not path.exists():
            print(f"❌ File not found: {path}")
            sys.exit(1)
        print(f"\n📂 Using archive: {path}")
        text = path.read_text(encoding="utf-8-sig")
    else:
        print("\n📝 Using the built-in sample archive (No --file provided)")
        text = json.dumps(SAMPLE_ARCHIVE)

    with tempfile.TemporaryDirectory(prefix="saveport-smoke-") as tmp:
        sys.exit(asyncio.run(round_trip(text, Path(tmp))))


if __name__ == "__main__":
    main()
