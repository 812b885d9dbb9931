#!/usr/bin/env python3
"""
Main entry point for the GCS proxy when running from a checkout.
This file allows running the proxy directly from the project root.
"""

import sys
from pathlib import Path

# Add the src directory to Python path
src_dir = Path(__file__).parent / "src"
sys.path.insert(0, str(src_dir))


def main():
    """Run the GCS proxy server."""
    from gcs_proxy.core.config import get_settings
    from gcs_proxy.main import main as run

    settings = get_settings()
    print("Starting GCS proxy locally...")
    print(f"Health check: http://{settings.HOST}:{settings.PORT}/")

    run()


if __name__ == "__main__":
    main()
