"""PMID verification exports."""

from __future__ import annotations

from .cache import CacheEntry, VerificationCache, prune, reconcile
from .extract import extract_pmids
from .probe import PubMedProbe
from .verifier import ExistenceProbe, PmidVerifier

__all__ = [
    "CacheEntry",
    "ExistenceProbe",
    "PmidVerifier",
    "PubMedProbe",
    "VerificationCache",
    "extract_pmids",
    "prune",
    "reconcile",
]
