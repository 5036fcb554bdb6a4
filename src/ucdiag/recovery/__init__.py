"""Recovery plan synthesis and proof annotation modules."""

from ucdiag.recovery.plan import RecoveryPlan, RecoveryPlanSynthesizer, RecoveryStep
from ucdiag.recovery.proofs import (
    ProofAnnotator,
    ProofCoverage,
    ProofReference,
    classify,
    proofs_for,
    proofs_for_step,
    verify_proofs,
)

__all__ = [
    "ProofAnnotator",
    "ProofCoverage",
    "ProofReference",
    "RecoveryPlan",
    "RecoveryPlanSynthesizer",
    "RecoveryStep",
    "classify",
    "proofs_for",
    "proofs_for_step",
    "verify_proofs",
]
