import os
import subprocess
import sys


TRUTHY_VALUES = {"1", "true", "yes", "y", "on"}
REQUIRED_DB_ENV_VARS = ("DB_NAME", "DB_USER", "DB_PASSWORD", "DB_HOST", "DB_PORT")


def is_truthy(value):
    if value is None:
        return False
    return str(value).strip().lower() in TRUTHY_VALUES


def has_database_config():
    if (os.getenv("DATABASE_URL") or "").strip():
        return True
    return all((os.getenv(key) or "").strip() for key in REQUIRED_DB_ENV_VARS)


def should_run_db_init():
    if is_truthy(os.getenv("SKIP_DB_INIT")):
        return False
    return is_truthy(os.getenv("RUN_DB_INIT")) or has_database_config()


def run_db_init():
    print("[startup] Creating tracker schema: python init_db.py")
    subprocess.run([sys.executable, "init_db.py"], check=True)


def should_start_poller():
    return is_truthy(os.getenv("START_POLLER")) and has_database_config()


def start_poller():
    print("[startup] Starting chapter poller in the background: python run_poller.py")
    return subprocess.Popen([sys.executable, "run_poller.py"])


def build_gunicorn_command():
    """Gunicorn command line for the dashboard API.

    The resolution cache is per process, so the default is a single worker
    process serving requests from a thread pool.
    """
    port = (os.getenv("PORT") or "5000").strip()
    bind = (os.getenv("GUNICORN_BIND") or f"0.0.0.0:{port}").strip()
    workers = (os.getenv("WEB_CONCURRENCY") or "1").strip()
    threads = (os.getenv("GUNICORN_THREADS") or "8").strip()
    timeout = (os.getenv("GUNICORN_TIMEOUT") or "60").strip()

    return [
        "gunicorn",
        "app:app",
        "--bind",
        bind,
        "--workers",
        workers,
        "--worker-class",
        "gthread",
        "--threads",
        threads,
        "--timeout",
        timeout,
    ]


def main():
    if should_run_db_init():
        run_db_init()
    else:
        print("[startup] Skipping schema init (no DB config or SKIP_DB_INIT=1).")

    if should_start_poller():
        start_poller()

    command = build_gunicorn_command()
    print("[startup] Starting dashboard API:", " ".join(command))
    os.execvp(command[0], command)


if __name__ == "__main__":
    main()
