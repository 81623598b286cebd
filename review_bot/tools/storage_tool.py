"""Persistence for rules, effectiveness records, analysis runs and checkpoints."""

import asyncio
import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import ConfigurationError, TransientExternalFailure
from ..models import AnalysisRun, EffectivenessRecord, RuleSet
from ..utils import get_logger

RULES_FILE = "coding-standards.json"
EFFECTIVENESS_FILE = "effectiveness.json"
RUNS_FILE = "analysis-runs.jsonl"
CHECKPOINTS_FILE = "checkpoints.json"


class Store(ABC):
    """Persistence capability used by the learning subsystem and batch engine."""

    @abstractmethod
    async def load_rule_set(self) -> Optional[RuleSet]:
        """Return the configured rules, or None when none are configured."""

    @abstractmethod
    async def load_effectiveness(self) -> Dict[str, EffectivenessRecord]:
        ...

    @abstractmethod
    async def save_effectiveness(self, records: Dict[str, EffectivenessRecord]) -> None:
        ...

    @abstractmethod
    async def append_analysis_run(self, run: AnalysisRun) -> None:
        ...

    @abstractmethod
    async def load_analysis_runs(self) -> List[AnalysisRun]:
        ...

    @abstractmethod
    async def save_checkpoint(self, job_id: str, progress: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def load_checkpoints(self) -> Dict[str, Dict[str, Any]]:
        ...


class MemoryStore(Store):
    """In-process store; nothing survives the process."""

    def __init__(self, rule_set: Optional[RuleSet] = None):
        self.rule_set = rule_set
        self.records: Dict[str, EffectivenessRecord] = {}
        self.runs: List[AnalysisRun] = []
        self.checkpoints: Dict[str, Dict[str, Any]] = {}

    async def load_rule_set(self) -> Optional[RuleSet]:
        return self.rule_set

    async def load_effectiveness(self) -> Dict[str, EffectivenessRecord]:
        return dict(self.records)

    async def save_effectiveness(self, records: Dict[str, EffectivenessRecord]) -> None:
        self.records = dict(records)

    async def append_analysis_run(self, run: AnalysisRun) -> None:
        self.runs.append(run)

    async def load_analysis_runs(self) -> List[AnalysisRun]:
        return list(self.runs)

    async def save_checkpoint(self, job_id: str, progress: Dict[str, Any]) -> None:
        self.checkpoints[job_id] = dict(progress)

    async def load_checkpoints(self) -> Dict[str, Dict[str, Any]]:
        return {job_id: dict(p) for job_id, p in self.checkpoints.items()}


class JsonFileStore(Store):
    """
    Store backed by JSON files in one directory.

    Layout:
      - coding-standards.json: list of rule objects
      - effectiveness.json: list of effectiveness records
      - analysis-runs.jsonl: one analysis run per line
      - checkpoints.json: batch progress keyed by job id

    File I/O runs in worker threads; writes are serialized by one lock.
    """

    def __init__(self, data_dir: str):
        self.data_dir = Path(data_dir)
        self.logger = get_logger()
        self._lock = asyncio.Lock()

    def _path(self, name: str) -> Path:
        return self.data_dir / name

    def _read_json(self, name: str) -> Any:
        path = self._path(name)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Malformed JSON in {path}: {e}") from e
        except OSError as e:
            raise TransientExternalFailure(f"Failed to read {path}: {e}") from e

    def _write_json(self, name: str, data: Any):
        path = self._path(name)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, path)
        except OSError as e:
            raise TransientExternalFailure(f"Failed to write {path}: {e}") from e

    def _append_line(self, name: str, data: Any):
        path = self._path(name)
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(json.dumps(data) + "\n")
        except OSError as e:
            raise TransientExternalFailure(f"Failed to append to {path}: {e}") from e

    async def load_rule_set(self) -> Optional[RuleSet]:
        data = await asyncio.to_thread(self._read_json, RULES_FILE)
        if data is None:
            return None
        if not isinstance(data, list):
            raise ConfigurationError(f"{RULES_FILE} must contain a list of rules")
        return RuleSet.from_dicts(data)

    async def save_rule_set(self, rule_set: RuleSet) -> None:
        payload = [rule.to_dict() for rule in rule_set]
        async with self._lock:
            await asyncio.to_thread(self._write_json, RULES_FILE, payload)

    async def load_effectiveness(self) -> Dict[str, EffectivenessRecord]:
        data = await asyncio.to_thread(self._read_json, EFFECTIVENESS_FILE) or []
        records = {}
        for entry in data:
            try:
                record = EffectivenessRecord.from_dict(entry)
            except (KeyError, TypeError, ValueError) as e:
                self.logger.warning(f"Skipping malformed effectiveness record: {e}")
                continue
            records[record.rule_id] = record
        return records

    async def save_effectiveness(self, records: Dict[str, EffectivenessRecord]) -> None:
        payload = [records[rule_id].to_dict() for rule_id in sorted(records)]
        async with self._lock:
            await asyncio.to_thread(self._write_json, EFFECTIVENESS_FILE, payload)

    async def append_analysis_run(self, run: AnalysisRun) -> None:
        async with self._lock:
            await asyncio.to_thread(self._append_line, RUNS_FILE, run.to_dict())

    def _read_runs(self) -> List[AnalysisRun]:
        path = self._path(RUNS_FILE)
        if not path.exists():
            return []
        runs = []
        try:
            with open(path, encoding="utf-8") as f:
                for number, line in enumerate(f, 1):
                    if not line.strip():
                        continue
                    try:
                        runs.append(AnalysisRun.from_dict(json.loads(line)))
                    except (KeyError, TypeError, ValueError) as e:
                        self.logger.warning(f"Skipping malformed run at {path}:{number}: {e}")
        except OSError as e:
            raise TransientExternalFailure(f"Failed to read {path}: {e}") from e
        return runs

    async def load_analysis_runs(self) -> List[AnalysisRun]:
        return await asyncio.to_thread(self._read_runs)

    async def save_checkpoint(self, job_id: str, progress: Dict[str, Any]) -> None:
        async with self._lock:
            checkpoints = await asyncio.to_thread(self._read_json, CHECKPOINTS_FILE) or {}
            checkpoints[job_id] = progress
            await asyncio.to_thread(self._write_json, CHECKPOINTS_FILE, checkpoints)

    async def load_checkpoints(self) -> Dict[str, Dict[str, Any]]:
        return await asyncio.to_thread(self._read_json, CHECKPOINTS_FILE) or {}
