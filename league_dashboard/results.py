"""
Summaries reported by the enrichment stages
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class StageSummary:
    stage: str
    requested: int = 0
    succeeded: int = 0
    failed: int = 0
    upserted: int = 0
    modified: int = 0
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CoverageReport:
    total_uris: int
    with_metadata: int
    percentage: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class EnrichmentSummary:
    run_id: str
    stages: List[StageSummary] = field(default_factory=list)
    coverage: Optional[CoverageReport] = None

    @property
    def failed(self) -> int:
        return sum(stage.failed for stage in self.stages)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runId": self.run_id,
            "stages": [stage.to_dict() for stage in self.stages],
            "coverage": self.coverage.to_dict() if self.coverage else None,
            "failed": self.failed,
        }
