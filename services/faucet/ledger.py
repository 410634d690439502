"""
Cooldown ledger store.

The ledger is one JSON object keyed by claim key:

    {"<key>": {"lastClaimedAt": <epoch-ms>, "lastTxId": "0x..."}}

Older files stored either a bare epoch-ms number per key or
{"last": <epoch-ms>, "tx": "0x..."}; both are read and rewritten in the
canonical shape on the next save.

This store is the only code that touches the backing file.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional

from shared.logging.logger import get_logger
from services.faucet.errors import CorruptLedger
from services.faucet.models import ClaimRecord, Ledger

try:
    import fcntl
except ImportError:  # Windows
    fcntl = None

log = get_logger("faucet.ledger")

LOCK_POLL_SECONDS = 0.05


def _parse_record(key: str, raw: Any) -> ClaimRecord:
    if isinstance(raw, bool):
        raise ValueError(f"entry {key!r} is not a timestamp")

    if isinstance(raw, (int, float)):
        return ClaimRecord(key=key, last_claimed_at=int(raw))

    if not isinstance(raw, dict):
        raise ValueError(f"entry {key!r} has unsupported type {type(raw).__name__}")

    last = raw.get("lastClaimedAt", raw.get("last"))
    if isinstance(last, bool) or not isinstance(last, (int, float)):
        raise ValueError(f"entry {key!r} has no claim timestamp")

    tx = raw.get("lastTxId", raw.get("tx"))
    if tx is not None and not isinstance(tx, str):
        raise ValueError(f"entry {key!r} has a non-string tx id")

    return ClaimRecord(key=key, last_claimed_at=int(last), last_tx_id=tx)


class LedgerStore:
    """
    Flat-file ledger with atomic whole-file rewrites.

    Callers hold `async with locked()` across load -> modify -> save so
    that other processes sharing the file cannot interleave.
    """

    def __init__(self, path: Path | str):
        self._path = Path(path)
        self._lock_path = self._path.with_name(self._path.name + ".lock")

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def load(self) -> Ledger:
        """
        Return the full ledger; empty if the file does not exist yet.

        Raises CorruptLedger if the file exists but cannot be parsed.
        """
        if not self._path.exists():
            return {}

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CorruptLedger(self._path, str(e)) from e

        if not isinstance(data, dict):
            raise CorruptLedger(self._path, "root value is not an object")

        ledger: Ledger = {}
        for key, raw in data.items():
            try:
                ledger[key] = _parse_record(key, raw)
            except ValueError as e:
                raise CorruptLedger(self._path, str(e)) from e

        return ledger

    def get(self, key: str) -> Optional[ClaimRecord]:
        return self.load().get(key)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def _write_atomic(self, payload: Dict[str, Any]) -> None:
        serialized = json.dumps(payload, indent=2)
        self._path.parent.mkdir(parents=True, exist_ok=True)

        tmp = tempfile.NamedTemporaryFile(
            "w", dir=self._path.parent, delete=False, encoding="utf-8"
        )
        temp_path = Path(tmp.name)

        try:
            with tmp:
                tmp.write(serialized)
                tmp.flush()
                os.fsync(tmp.fileno())
            temp_path.replace(self._path)
        except Exception:
            temp_path.unlink(missing_ok=True)
            raise

    def save(self, ledger: Ledger) -> None:
        """
        Serialize the full mapping and atomically replace the backing file.
        """
        payload = {key: record.to_dict() for key, record in ledger.items()}
        self._write_atomic(payload)
        log.debug(f"Ledger saved ({len(payload)} entries) -> {self._path}")

    def quarantine(self) -> Optional[Path]:
        """
        Move an unreadable ledger aside so the next load starts empty.

        Returns the backup path, or None if there was nothing to move.
        """
        if not self._path.exists():
            return None

        backup = self._path.with_name(
            f"{self._path.name}.corrupt-{int(time.time())}"
        )
        self._path.replace(backup)
        log.warning(f"Corrupt ledger moved aside: {self._path} -> {backup}")
        return backup

    # ------------------------------------------------------------------
    # Cross-process lock
    # ------------------------------------------------------------------

    def _try_lock(self, f) -> bool:
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return False
        return True

    @asynccontextmanager
    async def locked(self) -> AsyncIterator[None]:
        """
        Hold an exclusive advisory lock on <ledger>.lock (POSIX only).

        The lock is taken non-blocking and polled, so a second process
        holding it never stalls the event loop.
        """
        if fcntl is None:
            yield
            return

        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._lock_path, "a+", encoding="utf-8") as f:
            waited = False
            while not self._try_lock(f):
                if not waited:
                    log.info(f"Waiting for ledger lock held elsewhere: {self._lock_path}")
                    waited = True
                await asyncio.sleep(LOCK_POLL_SECONDS)
            try:
                yield
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
