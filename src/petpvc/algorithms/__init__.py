"""Partial volume correction algorithms."""

from petpvc.algorithms.gtm import TransferMatrix, build_gtm, regional_means, solve_corrected_means
from petpvc.algorithms.rbv import RBVResult, rbv_correct, run_rbv, synthetic_volume
from petpvc.algorithms.iterative_yang import IterativeYang, iterative_yang

__all__ = [
    "TransferMatrix",
    "build_gtm",
    "regional_means",
    "solve_corrected_means",
    "RBVResult",
    "rbv_correct",
    "run_rbv",
    "synthetic_volume",
    "IterativeYang",
    "iterative_yang",
]
