#!/usr/bin/env python3
from __future__ import annotations

import argparse
import os
import signal
import subprocess
import sys
import time
import urllib.error
import urllib.request
from pathlib import Path


ROOT_DIR = Path(__file__).resolve().parent
BACKEND_DIR = ROOT_DIR / "backend"
RUNTIME_DIR = ROOT_DIR / ".runtime"
VENV_DIR = RUNTIME_DIR / "venv"


def run_checked(cmd: list[str], cwd: Path | None = None, env: dict[str, str] | None = None) -> None:
    print(f"[setup] {' '.join(cmd)}")
    subprocess.run(cmd, cwd=cwd, env=env, check=True)


def venv_python_executable() -> Path:
    if os.name == "nt":
        return VENV_DIR / "Scripts" / "python.exe"
    return VENV_DIR / "bin" / "python"


def ensure_runtime() -> Path:
    python_path = venv_python_executable()
    if python_path.exists():
        return python_path

    RUNTIME_DIR.mkdir(parents=True, exist_ok=True)
    run_checked([sys.executable, "-m", "venv", str(VENV_DIR)])
    if not python_path.exists():
        raise RuntimeError("Failed to create runtime environment.")
    return python_path


def dependencies_installed(python_executable: Path) -> bool:
    check_cmd = [
        str(python_executable),
        "-c",
        "import filevault, flask, flask_sqlalchemy, flask_migrate, flask_jwt_extended, flask_cors, dotenv, argon2, pydantic",
    ]
    return subprocess.run(check_cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL).returncode == 0


def ensure_dependencies(python_executable: Path, auto_install: bool) -> None:
    if dependencies_installed(python_executable):
        return

    if not auto_install:
        raise RuntimeError("Dependencies are missing. Run: pip install -e .")

    run_checked([str(python_executable), "-m", "pip", "install", "-e", str(ROOT_DIR)])


def seed_admin(python_executable: Path, email: str, password: str) -> None:
    env = os.environ.copy()
    env["ADMIN_EMAIL"] = email
    env["ADMIN_PASSWORD"] = password
    run_checked([str(python_executable), "seed.py"], cwd=BACKEND_DIR, env=env)


def wait_for_http(url: str, timeout_seconds: int = 30) -> None:
    start = time.time()
    while time.time() - start < timeout_seconds:
        try:
            with urllib.request.urlopen(url, timeout=2) as response:
                if 200 <= response.status < 500:
                    return
        except (urllib.error.URLError, TimeoutError):
            time.sleep(0.4)
    raise RuntimeError(f"Timed out waiting for {url}")


def terminate_process(process: subprocess.Popen[str]) -> None:
    if process.poll() is not None:
        return
    process.terminate()
    try:
        process.wait(timeout=6)
    except subprocess.TimeoutExpired:
        process.kill()


def start_backend(python_executable: Path, port: int) -> subprocess.Popen[str]:
    env = os.environ.copy()
    env["FLASK_DEBUG"] = "0"
    env["PYTHONUNBUFFERED"] = "1"
    env.setdefault("FRONTEND_ORIGINS", f"http://localhost:{port},http://127.0.0.1:{port}")
    return subprocess.Popen(
        [
            str(python_executable),
            "-m",
            "flask",
            "--app",
            "wsgi:app",
            "run",
            "--host",
            "127.0.0.1",
            "--port",
            str(port),
        ],
        cwd=BACKEND_DIR,
        env=env,
    )


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Start FileVault locally.")
    parser.add_argument("--port", type=int, default=5000)
    parser.add_argument("--admin-email", default="admin@example.com")
    parser.add_argument("--admin-password", default="Admin12345")
    parser.add_argument("--no-install", action="store_true", help="Do not auto-install missing dependencies.")
    return parser.parse_args()


def main() -> int:
    args = parse_args()

    if not BACKEND_DIR.exists():
        raise RuntimeError("Expected a /backend directory in the project root.")

    python_executable = ensure_runtime()
    ensure_dependencies(python_executable, auto_install=not args.no_install)
    seed_admin(python_executable, email=args.admin_email, password=args.admin_password)

    backend_process = start_backend(python_executable, port=args.port)
    try:
        wait_for_http(f"http://127.0.0.1:{args.port}/api/health", timeout_seconds=35)

        print("")
        print("FileVault is running")
        print(f"App:    http://127.0.0.1:{args.port}/files")
        print(f"Admin:  {args.admin_email} / {args.admin_password}")
        print("Stop with Ctrl+C")
        print("")

        while backend_process.poll() is None:
            time.sleep(1)
        return backend_process.returncode or 1
    except KeyboardInterrupt:
        print("\nStopping FileVault...")
        return 0
    finally:
        terminate_process(backend_process)


if __name__ == "__main__":
    signal.signal(signal.SIGINT, signal.default_int_handler)
    raise SystemExit(main())
