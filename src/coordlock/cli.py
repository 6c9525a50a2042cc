"""coordlock command-line interface."""

from __future__ import annotations

import json
import subprocess
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import List, Optional

import typer

from coordlock.core.errors import LockError, LockTimeoutError
from coordlock.core.lock import DistributedLock
from coordlock.core.logging import ensure_runtime_dirs, log_event
from coordlock.core.metrics import snapshot_kpis
from coordlock.session import open_session
from coordlock.settings import AppSettings, get_settings
from coordlock.utils.env import mask
from coordlock.utils.logging_setup import setup_logging

from . import __version__

app = typer.Typer(name="coordlock", help="Fair distributed locks on ZooKeeper.")
root_app = typer.Typer(help="Manage lock root paths.")
app.add_typer(root_app, name="root")

EXIT_LOCK_ERROR = 1
EXIT_TIMEOUT = 2

ROOT_OPTION = typer.Option(None, "--root", "-r", help="Lock root path (defaults to LOCK_ROOT).")


def _settings() -> AppSettings:
    ensure_runtime_dirs()
    settings = get_settings()
    setup_logging()
    return settings


def _resolve_root(settings: AppSettings, root: str | None) -> str:
    value = (root or settings.lock_root).strip()
    if not value.startswith("/"):
        raise typer.BadParameter(f"lock root must be absolute: {value!r}")
    return value


@contextmanager
def _lock_errors(topic: str, root: str) -> Iterator[None]:
    try:
        yield
    except LockTimeoutError as exc:
        log_event("cli", topic, "lock wait timed out", level="WARN", lock_root=root, timeout=exc.timeout)
        typer.secho(str(exc), err=True, fg=typer.colors.YELLOW)
        raise typer.Exit(EXIT_TIMEOUT)
    except LockError as exc:
        log_event(
            "cli",
            topic,
            "lock operation failed",
            level="ERROR",
            lock_root=root,
            error=type(exc).__name__,
            detail=str(exc),
        )
        typer.secho(f"{type(exc).__name__}: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(EXIT_LOCK_ERROR)


@app.command()
def version() -> None:
    """Print the coordlock version."""

    typer.echo(__version__)


@app.command()
def config() -> None:
    """Print the effective settings with credentials masked."""

    settings = _settings()
    data = settings.model_dump()
    data["zk_auth_credential"] = mask(settings.zk_auth_credential)
    typer.echo(json.dumps(data, indent=2, sort_keys=True))


@app.command()
def queue(
    root: Optional[str] = ROOT_OPTION,
    as_json: bool = typer.Option(False, "--json", help="Emit JSON instead of a table."),
) -> None:
    """Show contenders for a lock in acquisition order."""

    settings = _settings()
    lock_root = _resolve_root(settings, root)
    with _lock_errors("queue", lock_root):
        with open_session(settings) as client:
            lock = DistributedLock(client, lock_root, prefix=settings.lock_node_prefix)
            contenders = lock.contenders()

    if as_json:
        typer.echo(json.dumps({"root": lock_root, "contenders": contenders}, separators=(",", ":")))
    elif not contenders:
        typer.echo("no contenders")
    else:
        typer.echo(f"{'pos':>4} {'node':<24} role")
        for idx, name in enumerate(contenders):
            role = "holder" if idx == 0 else "waiting"
            typer.echo(f"{idx:>4} {name:<24} {role}")
    log_event("cli", "queue", "listed contenders", lock_root=lock_root, count=len(contenders))


@app.command()
def hold(
    root: Optional[str] = ROOT_OPTION,
    seconds: float = typer.Option(5.0, "--seconds", "-s", min=0.0, help="Seconds to hold the lock."),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", min=0.0, help="Max seconds to wait."),
) -> None:
    """Acquire a lock, hold it for a while, then release it."""

    settings = _settings()
    lock_root = _resolve_root(settings, root)
    with _lock_errors("hold", lock_root):
        with open_session(settings) as client:
            lock = DistributedLock(client, lock_root, prefix=settings.lock_node_prefix)
            lock.acquire(timeout=timeout)
            typer.echo(f"acquired {lock.node_path}")
            log_event("cli", "hold", "lock acquired", lock=lock)
            try:
                time.sleep(seconds)
            finally:
                lock.release()
    typer.echo("released")
    log_event("cli", "hold", "lock released", lock_root=lock_root, held_sec=seconds)


@app.command(context_settings={"allow_interspersed_args": False})
def run(
    command: List[str] = typer.Argument(..., help="Command to execute while holding the lock."),
    root: Optional[str] = ROOT_OPTION,
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", min=0.0, help="Max seconds to wait."),
) -> None:
    """Run a command while holding the lock; exit with its return code."""

    settings = _settings()
    lock_root = _resolve_root(settings, root)
    with _lock_errors("run", lock_root):
        with open_session(settings) as client:
            lock = DistributedLock(client, lock_root, prefix=settings.lock_node_prefix)
            lock.acquire(timeout=timeout)
            try:
                log_event("cli", "run", "command started", lock=lock, command=" ".join(command))
                try:
                    completed = subprocess.run(command, check=False)
                except OSError as exc:
                    log_event("cli", "run", "command spawn failed", level="ERROR", lock=lock, error=str(exc))
                    typer.secho(f"failed to start command: {exc}", err=True, fg=typer.colors.RED)
                    returncode = 127
                else:
                    returncode = completed.returncode
            finally:
                lock.release()
    kpi = snapshot_kpis()
    log_event(
        "cli",
        "run",
        "command finished",
        lock_root=lock_root,
        returncode=returncode,
        wait_ms=kpi["acquire_wait_ms_median"],
    )
    raise typer.Exit(returncode)


@root_app.command("ensure")
def root_ensure(root: Optional[str] = ROOT_OPTION) -> None:
    """Create the lock root path if it does not exist."""

    settings = _settings()
    lock_root = _resolve_root(settings, root)
    with _lock_errors("root.ensure", lock_root):
        with open_session(settings) as client:
            client.ensure_path(lock_root)
    typer.echo(f"ensured {lock_root}")
    log_event("cli", "root.ensure", "lock root ensured", lock_root=lock_root)


if __name__ == "__main__":
    app()
