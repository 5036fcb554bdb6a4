"""Proof references for recovery operations.

Every recovery operation category maps to a fixed set of externally verified
theorems. The references are descriptive: nothing here checks that the cited
proofs hold, verify_proofs() only asks the proof toolchain whether the proof
project still builds.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Optional

from ucdiag.exceptions import ProofToolError
from ucdiag.types import OperationCategory

if TYPE_CHECKING:
    from ucdiag.recovery.plan import RecoveryStep

__all__ = [
    "ProofReference",
    "ProofAnnotator",
    "ProofCoverage",
    "classify",
    "proofs_for",
    "proofs_for_step",
    "verify_proofs",
]

logger = logging.getLogger(__name__)

LOSSLESS = "RecoveryProofs.Lossless"
FD_PRESERVING = "RecoveryProofs.FDPreserving"
ROLLBACK = "RecoveryProofs.Rollback"


@dataclass(frozen=True)
class ProofReference:
    """A theorem in the proof library that a recovery step relies on."""

    module: str
    theorem: str
    description: str

    def annotation(self) -> str:
        return f"{self.module}.{self.theorem}"


_PROOFS: dict[OperationCategory, tuple[ProofReference, ...]] = {
    OperationCategory.INSERT: (
        ProofReference(LOSSLESS, "insert_is_lossless", "INSERT preserves all existing rows"),
        ProofReference(LOSSLESS, "insert_is_reversible", "INSERT can be undone via DELETE"),
        ProofReference(
            FD_PRESERVING,
            "insert_preserves_fds_if_compatible",
            "INSERT preserves functional dependencies when row is compatible",
        ),
    ),
    OperationCategory.DELETE: (
        ProofReference(
            LOSSLESS,
            "delete_with_archive_is_lossless",
            "DELETE with archive preserves data (rows are archived, not lost)",
        ),
        ProofReference(
            FD_PRESERVING,
            "delete_preserves_fds",
            "DELETE always preserves functional dependencies",
        ),
        ProofReference(
            FD_PRESERVING,
            "delete_snapshot_preserves_fds",
            "DELETE at snapshot level preserves all FDs",
        ),
    ),
    # UPDATE is modelled as DELETE followed by INSERT.
    OperationCategory.UPDATE: (
        ProofReference(
            LOSSLESS,
            "delete_with_archive_is_lossless",
            "UPDATE's DELETE phase preserves data in archive",
        ),
        ProofReference(
            LOSSLESS, "insert_is_lossless", "UPDATE's INSERT phase preserves existing rows"
        ),
        ProofReference(
            LOSSLESS, "lossless_compose", "Composed operations (DELETE+INSERT) are lossless"
        ),
    ),
    OperationCategory.ROLLBACK: (
        ProofReference(
            ROLLBACK,
            "transaction_rollback_correct",
            "Transaction rollback restores previous state",
        ),
        ProofReference(
            ROLLBACK, "migration_reversible", "Migration with inverse is reversible"
        ),
    ),
    OperationCategory.MIGRATION: (
        ProofReference(LOSSLESS, "lossless_compose", "Multi-step migration preserves data"),
        ProofReference(
            FD_PRESERVING,
            "FDPreservingTransformation",
            "Migration preserves all functional dependencies",
        ),
    ),
}

_KEYWORDS: tuple[tuple[OperationCategory, tuple[str, ...]], ...] = (
    (OperationCategory.INSERT, ("insert", "add")),
    (OperationCategory.DELETE, ("delete", "remove")),
    (OperationCategory.UPDATE, ("update", "modify", "fix")),
    (OperationCategory.ROLLBACK, ("rollback", "revert")),
)


def classify(description: str) -> OperationCategory:
    """Keyword classification of a step description; MIGRATION when nothing matches."""
    lower = description.lower()
    for category, keywords in _KEYWORDS:
        if any(keyword in lower for keyword in keywords):
            return category
    return OperationCategory.MIGRATION


def proofs_for(category: OperationCategory) -> list[ProofReference]:
    return list(_PROOFS[category])


def proofs_for_step(description: str) -> list[ProofReference]:
    return proofs_for(classify(description))


class ProofAnnotator:
    """Attach proof annotations to recovery steps."""

    def category_for(self, step: RecoveryStep) -> OperationCategory:
        """The step's explicit category if it has one, else its text classification."""
        if step.category is not None:
            return step.category
        return classify(step.description)

    def proofs(self, step: RecoveryStep) -> list[ProofReference]:
        return proofs_for(self.category_for(step))

    def annotate(self, step: RecoveryStep) -> list[str]:
        return [p.annotation() for p in self.proofs(step)]


_PROPERTY_MARKERS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Data Preservation", ("lossless", "preserves")),
    ("FD Preservation", ("functional dependencies", "FD")),
    ("Reversibility", ("reversible", "undone")),
)


@dataclass(frozen=True)
class ProofCoverage:
    """Summary of proof coverage for a set of recovery steps."""

    total_steps: int = 0
    steps_with_proofs: int = 0
    unique_proofs: int = 0
    proven_properties: tuple[str, ...] = field(default_factory=tuple)

    @property
    def all_verified(self) -> bool:
        return self.steps_with_proofs == self.total_steps

    @classmethod
    def from_steps(cls, step_descriptions: Iterable[str]) -> ProofCoverage:
        """Coverage from free-text step descriptions (text classification only)."""
        return cls._accumulate(proofs_for_step(d) for d in step_descriptions)

    @classmethod
    def from_plan_steps(
        cls, steps: Iterable[RecoveryStep], annotator: Optional[ProofAnnotator] = None
    ) -> ProofCoverage:
        """Coverage from recovery steps, honouring explicit step categories."""
        annotator = annotator or ProofAnnotator()
        return cls._accumulate(annotator.proofs(step) for step in steps)

    @classmethod
    def _accumulate(cls, per_step: Iterable[list[ProofReference]]) -> ProofCoverage:
        total = 0
        with_proofs = 0
        annotations: set[str] = set()
        properties: set[str] = set()
        for proofs in per_step:
            total += 1
            if proofs:
                with_proofs += 1
            for proof in proofs:
                annotations.add(proof.annotation())
                for name, markers in _PROPERTY_MARKERS:
                    if any(marker in proof.description for marker in markers):
                        properties.add(name)
        return cls(
            total_steps=total,
            steps_with_proofs=with_proofs,
            unique_proofs=len(annotations),
            proven_properties=tuple(
                name for name, _ in _PROPERTY_MARKERS if name in properties
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_steps": self.total_steps,
            "steps_with_proofs": self.steps_with_proofs,
            "unique_proofs": self.unique_proofs,
            "proven_properties": list(self.proven_properties),
            "all_verified": self.all_verified,
        }


def verify_proofs(core_path: Path) -> bool:
    """Build the proof project with ``lake build``.

    Returns:
        True if the build succeeded, False if it ran and failed.

    Raises:
        ProofToolError: If the project or the lake tool is unavailable.
    """
    if not core_path.exists():
        raise ProofToolError(f"Core path does not exist: {core_path}")
    if not (core_path / "lakefile.lean").exists():
        raise ProofToolError("lakefile.lean not found in core directory")

    logger.info(f"Verifying proofs in {core_path}")
    try:
        completed = subprocess.run(
            ["lake", "build"],
            cwd=core_path,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as e:
        raise ProofToolError(f"Failed to run lake: {e}") from e

    if completed.returncode != 0:
        logger.warning(f"lake build failed with exit code {completed.returncode}")
    return completed.returncode == 0
