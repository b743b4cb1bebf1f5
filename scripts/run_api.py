#!/usr/bin/env python
"""
Start the Quotation Tool API.

Usage:
    python scripts/run_api.py [port]
"""
import sys
from pathlib import Path

import uvicorn

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from quotation_tool.config.settings import get_settings


def main():
    port = int(sys.argv[1]) if len(sys.argv) > 1 else 8000
    settings = get_settings()

    print("Starting Quotation Tool API (FastAPI)...")
    print(f"  Record store: {settings.store_dir}")
    print(f"  Tax rate: {settings.tax_rate}%")
    try:
        uvicorn.run(
            "quotation_tool.api.main:app",
            host="0.0.0.0",
            port=port,
            reload=True,
            reload_dirs=[str(src_path)],
            log_level=settings.log_level.lower(),
        )
    except KeyboardInterrupt:
        print("\nAPI stopped.")


if __name__ == "__main__":
    main()
