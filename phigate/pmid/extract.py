from __future__ import annotations

import re
from typing import List

_PMID_LABEL_RE = re.compile(r"(?<![A-Za-z0-9])PMID\s*:?\s*(\d{1,8})(?!\d)", re.IGNORECASE)
_PUBMED_URL_RE = re.compile(r"pubmed\.ncbi\.nlm\.nih\.gov/(\d{1,8})(?!\d)", re.IGNORECASE)


def extract_pmids(text: str) -> List[str]:
    """PMIDs cited in model output, deduplicated, in order of first appearance."""
    if not text:
        return []
    found = []
    for rx in (_PMID_LABEL_RE, _PUBMED_URL_RE):
        for m in rx.finditer(text):
            found.append((m.start(), m.group(1)))
    found.sort()
    return list(dict.fromkeys(pmid for _, pmid in found))
