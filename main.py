"""Chronicle — dev launcher. Starts the API server in watch mode."""

import argparse
import os
import signal
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
BACKEND_PORT = os.getenv("BACKEND_PORT", "13013")


def main():
    parser = argparse.ArgumentParser(description="Chronicle dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--fresh", action="store_true",
                        help="Delete the save slot before starting")
    args = parser.parse_args()

    data_dir = args.data_dir or ROOT / "data"
    if args.fresh:
        from chronicle.config import get_settings
        from chronicle.storage import SaveStorage

        settings = get_settings(data_dir)
        SaveStorage.from_settings(data_dir, settings).clear()
        print(f"Cleared save slot {settings.save_slot}")

    # Build env for the subprocess so the backend picks up the same data dir
    env = os.environ.copy()
    env["DATA_DIR"] = str(data_dir.resolve())

    procs: list[subprocess.Popen] = []

    def shutdown(*_):
        print("\nShutting down...")
        for p in procs:
            p.terminate()
        for p in procs:
            p.wait()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    print(f"Starting backend on http://localhost:{BACKEND_PORT} ...")
    procs.append(subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "backend.app:app", "--reload",
         "--host", HOST, "--port", BACKEND_PORT],
        cwd=ROOT, env=env,
    ))

    for p in procs:
        p.wait()


if __name__ == "__main__":
    main()
