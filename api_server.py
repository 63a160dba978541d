import os
import sys
import uvicorn
import logging
import fcntl
from pathlib import Path
from dotenv import load_dotenv

# Log to stderr and to a local file.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.StreamHandler(sys.stderr),
        logging.FileHandler("api_server.log", mode="a")
    ]
)
logger = logging.getLogger("api_server")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


def _load_local_env() -> None:
    """Load config/secrets.env (if present) so the API engine sees the same keys as `main.py`."""
    env_path = Path(__file__).resolve().parent / "config" / "secrets.env"
    if env_path.exists():
        load_dotenv(env_path)
        logger.info("Loaded environment variables from %s", env_path)


def _acquire_single_instance_lock(lock_path: Path):
    """
    One API process per account: two engines would both place orders.
    Returns the open lock file; the caller keeps it alive for the process lifetime.
    """
    lock_f = lock_path.open("w")
    fcntl.flock(lock_f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    lock_f.write(str(os.getpid()))
    lock_f.flush()
    return lock_f


def main() -> None:
    _load_local_env()

    try:
        lock_f = _acquire_single_instance_lock(Path(".api_server.lock"))
    except OSError:
        logger.error("Another API instance appears to be running (lockfile busy). Exiting.")
        sys.exit(1)

    host = os.environ.get("AEGIS_API_HOST", DEFAULT_HOST)
    port = int(os.environ.get("AEGIS_API_PORT", DEFAULT_PORT))

    try:
        # The API process hosts the trading engine (see src/api/app.py startup).
        # Run either this or `main.py` against an account, not both.
        logger.info("Starting Aegis Trader API server on %s:%s", host, port)

        uvicorn.run(
            "src.api.app:app",
            host=host,
            port=port,
            reload=False,
            log_level="info",
            loop="auto",
            workers=1,
        )
    except Exception as e:
        logger.error(f"Fatal error in API server: {e}", exc_info=True)
        sys.exit(1)
    finally:
        lock_f.close()


if __name__ == "__main__":
    main()
