"""Taleweave launcher. Starts the API server with uvicorn."""

import argparse
import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "13013")


def main():
    parser = argparse.ArgumentParser(description="Taleweave API server")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--demo", action="store_true",
                        help="Write the demo world templates before starting")
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--port", type=int, default=int(PORT))
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    # The server module reads DATA_DIR at import time
    if args.data_dir:
        os.environ["DATA_DIR"] = str(args.data_dir.resolve())

    if args.demo:
        from taleweave.demo import create_demo_data
        from taleweave.storage import Storage
        create_demo_data(Storage(args.data_dir or ROOT / "data"))

    uvicorn.run("taleweave.app:app", host=args.host, port=args.port)


if __name__ == "__main__":
    main()
