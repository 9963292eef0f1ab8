from __future__ import annotations

import collections
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path

import pandas as pd

LOGGER = logging.getLogger("prombench_scaler.history")

COLUMNS = ["timestamp", "replicas", "deployments", "ok", "error"]


@dataclass
class ApplyRecord:
    timestamp: float
    replicas: int
    deployments: int
    ok: bool
    error: str | None = None


class ScaleHistory:
    """Keeps one row per apply attempt so a run can be lined up with benchmark data."""

    def __init__(self, clock=time.time) -> None:
        self._clock = clock
        self._records: list[ApplyRecord] = []

    def __len__(self) -> int:
        return len(self._records)

    def record(
        self,
        replicas: int,
        deployments: int,
        error: BaseException | None = None,
    ) -> ApplyRecord:
        entry = ApplyRecord(
            timestamp=self._clock(),
            replicas=replicas,
            deployments=deployments,
            ok=error is None,
            error=str(error) if error is not None else None,
        )
        self._records.append(entry)
        return entry

    def summaries(self) -> dict[str, int]:
        counter = collections.Counter("ok" if r.ok else "failed" for r in self._records)
        return dict(counter)

    def build_dataframe(self) -> pd.DataFrame:
        if not self._records:
            return pd.DataFrame(columns=COLUMNS)
        return pd.DataFrame([asdict(record) for record in self._records], columns=COLUMNS)

    def write_csv(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        df = self.build_dataframe()
        df.to_csv(path, index=False)
        LOGGER.info("Saved %d apply record(s) to %s", len(df), path)
        return path


__all__ = ["ApplyRecord", "ScaleHistory"]
