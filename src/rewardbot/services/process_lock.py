from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO


class InstanceLockedError(RuntimeError):
    pass


@dataclass(frozen=True)
class ProcessLock:
    path: str
    pid: int


def lock_path_for(state_path: str | Path) -> Path:
    resolved = Path(state_path).expanduser().resolve()
    return resolved.with_name(f"{resolved.name}.lock")


def _read_owner_pid(fh: BinaryIO) -> int | None:
    try:
        fh.seek(0)
        raw = fh.read().decode("utf-8", errors="ignore").strip()
    except OSError:
        return None
    return int(raw) if raw.isdigit() else None


def _lock(fh: BinaryIO) -> None:
    if os.name == "nt":
        import msvcrt

        fh.seek(0)
        msvcrt_mod: Any = msvcrt
        msvcrt_mod.locking(fh.fileno(), msvcrt_mod.LK_NBLCK, 1)
    else:
        import fcntl

        fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)


def _unlock(fh: BinaryIO) -> None:
    if os.name == "nt":
        import msvcrt

        fh.seek(0)
        msvcrt_mod: Any = msvcrt
        msvcrt_mod.locking(fh.fileno(), msvcrt_mod.LK_UNLCK, 1)
    else:
        import fcntl

        fcntl.flock(fh.fileno(), fcntl.LOCK_UN)


@contextmanager
def single_instance_lock(state_path: str | Path) -> Iterator[ProcessLock]:
    """Hold an exclusive OS file lock next to the state file.

    The state file is single-writer; a second process pointed at the same file
    fails fast with ``InstanceLockedError``.
    """

    path = lock_path_for(state_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_CREAT | os.O_RDWR)
    fh: BinaryIO = os.fdopen(fd, "r+b")
    pid = os.getpid()
    lock_acquired = False
    try:
        try:
            _lock(fh)
            lock_acquired = True
        except OSError as exc:
            owner = _read_owner_pid(fh)
            owner_text = f" owner_pid={owner}" if owner is not None else ""
            raise InstanceLockedError(
                "LOCKED: another rewardbot instance is using "
                f"state_path={Path(state_path).expanduser()} lock_path={path}.{owner_text}"
            ) from exc

        try:
            fh.seek(0)
            fh.truncate(0)
            fh.write(f"{pid}\n".encode())
            fh.flush()
            os.fsync(fh.fileno())
        except OSError:
            pass

        yield ProcessLock(path=str(path), pid=pid)
    finally:
        if lock_acquired:
            try:
                _unlock(fh)
            except OSError:
                pass
        try:
            fh.close()
        except OSError:
            pass
