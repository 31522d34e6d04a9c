"""Cache entry record.

Dataclass only, no storage access. to_record()/from_record() give a plain
structure suitable for any row or key-value store.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime

from gradebot.models import Recommendation


@dataclass(frozen=True)
class GradeCacheEntry:
    event_id: str
    fingerprint: str
    recommendations: tuple[Recommendation, ...]  # full spectrum, sorted
    computed_at: datetime
    expires_at: datetime | None = None
    jitter: dict[str, float] = field(default_factory=dict)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def to_record(self) -> dict:
        return {
            "event_id": self.event_id,
            "fingerprint": self.fingerprint,
            "recommendations": json.dumps([r.to_dict() for r in self.recommendations]),
            "jitter": json.dumps(self.jitter, sort_keys=True),
            "computed_at": self.computed_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_record(cls, d: dict) -> GradeCacheEntry:
        recs = json.loads(d.get("recommendations") or "[]")
        jitter = json.loads(d.get("jitter") or "{}")
        expires_at = d.get("expires_at")
        return cls(
            event_id=d["event_id"],
            fingerprint=d["fingerprint"],
            recommendations=tuple(Recommendation.from_dict(r) for r in recs),
            computed_at=datetime.fromisoformat(d["computed_at"]),
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
            jitter=jitter,
        )
