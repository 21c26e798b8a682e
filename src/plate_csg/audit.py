"""Build audit trail: phase checkpoints and hash-chained decisions."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

GENESIS_HASH = "0" * 64


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _canonical_json(payload: Dict[str, object]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def sha256_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass
class Checkpoint:
    phase_index: int
    phase_name: str
    payload_sha256: str
    path: Optional[Path] = None


class BuildAudit:
    """Records what a plate build did, phase by phase.

    Decisions (a layer left undivided, a cell replaced) are chained: each
    record carries the hash of the previous one, so an edited log no longer
    verifies. With ``artifacts_dir`` set, decisions are appended to
    ``decisions.jsonl`` and each checkpoint is written as its own JSON file;
    otherwise everything is kept in memory only.
    """

    def __init__(self, run_id: str, artifacts_dir: Optional[Path] = None):
        self.run_id = run_id
        self.artifacts_dir = Path(artifacts_dir) if artifacts_dir is not None else None
        if self.artifacts_dir is not None:
            (self.artifacts_dir / "checkpoints").mkdir(parents=True, exist_ok=True)
        self.decisions: List[Dict[str, object]] = []
        self._checkpoints: List[Checkpoint] = []
        self._prev_hash = GENESIS_HASH

    @property
    def checkpoints(self) -> List[Checkpoint]:
        return list(self._checkpoints)

    @property
    def final_hash(self) -> str:
        return self._prev_hash

    def record_decision(
        self,
        decision_type: str,
        entity_ids: Iterable[object],
        reason: str,
        evidence: Optional[Dict[str, object]] = None,
    ) -> Dict[str, object]:
        record: Dict[str, object] = {
            "schema_version": "plate_csg.decision.v1",
            "run_id": self.run_id,
            "seq": len(self.decisions) + 1,
            "timestamp_utc": _utc_now_iso(),
            "decision_type": decision_type,
            "entity_ids": [str(e) for e in entity_ids],
            "reason": reason,
            "evidence": evidence or {},
            "previous_hash": self._prev_hash,
        }
        record["hash"] = sha256_text(_canonical_json(record))
        self._prev_hash = record["hash"]
        self.decisions.append(record)

        if self.artifacts_dir is not None:
            with (self.artifacts_dir / "decisions.jsonl").open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
        return record

    def checkpoint(
        self,
        phase_name: str,
        counts: Dict[str, int],
        outputs: Optional[Dict[str, object]] = None,
    ) -> Checkpoint:
        phase_index = len(self._checkpoints)
        payload: Dict[str, object] = {
            "schema_version": "plate_csg.checkpoint.v1",
            "run_id": self.run_id,
            "phase_index": phase_index,
            "phase_name": phase_name,
            "timestamp_utc": _utc_now_iso(),
            "counts": counts,
            "outputs": outputs or {},
            "decision_hash": self._prev_hash,
        }
        payload_sha = sha256_text(_canonical_json(payload))
        path = None
        if self.artifacts_dir is not None:
            slug = phase_name.lower().replace(" ", "_")
            path = self.artifacts_dir / "checkpoints" / f"phase_{phase_index:02d}_{slug}.json"
            payload["payload_sha256"] = payload_sha
            path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")

        cp = Checkpoint(phase_index, phase_name, payload_sha, path)
        self._checkpoints.append(cp)
        return cp

    def verify_chain(self) -> bool:
        """Recompute every decision hash and check the links."""
        prev = GENESIS_HASH
        for record in self.decisions:
            body = {k: v for k, v in record.items() if k != "hash"}
            if body["previous_hash"] != prev or sha256_text(_canonical_json(body)) != record["hash"]:
                return False
            prev = record["hash"]
        return True

    def finalize(self) -> Dict[str, object]:
        summary: Dict[str, object] = {
            "schema_version": "plate_csg.hash_chain.v1",
            "run_id": self.run_id,
            "final_hash": self._prev_hash,
            "decision_count": len(self.decisions),
            "checkpoint_hashes": [
                {"phase_index": c.phase_index, "phase_name": c.phase_name,
                 "payload_sha256": c.payload_sha256}
                for c in self._checkpoints
            ],
        }
        if self.artifacts_dir is not None:
            (self.artifacts_dir / "hash_chain.json").write_text(
                json.dumps(summary, indent=2, sort_keys=True), encoding="utf-8"
            )
        return summary
