"""Canonical call order: gate, rotate, call, report, verify citations."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional

from phigate.errors import EmptyReply, PhiBlocked, UpstreamCallFailed
from phigate.guard.analyzer import PhiGuard, Status, Verdict
from phigate.keys.rotator import KeyRotator
from phigate.pmid.extract import extract_pmids
from phigate.pmid.verifier import PmidVerifier
from phigate.telemetry.logging import get_session_id, reset_session_id, set_session_id

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationReply:
    status: int
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


# call(key, redacted_text, age_context) -> reply
GenerateFn = Callable[[str, str, Optional[str]], Awaitable[GenerationReply]]


@dataclass(frozen=True)
class GuardedResult:
    verdict: Verdict
    reply_text: str
    key_index: int
    pmids: Dict[str, bool] = field(default_factory=dict)


class GuardedSession:
    """
    One guarded generation round trip.

    Raises PhiBlocked before any key is touched when the text is RED,
    KeysExhausted when no key is usable, UpstreamCallFailed (after the
    failure has been recorded against the key) for a non-2xx reply, and
    EmptyReply when a 2xx reply has no text. Retrying with the next key is
    left to the caller. Log lines emitted during a run share one session id.
    """

    def __init__(
        self,
        rotator: KeyRotator,
        verifier: PmidVerifier,
        guard: Optional[PhiGuard] = None,
    ) -> None:
        self.rotator = rotator
        self.verifier = verifier
        self.guard = guard or PhiGuard()

    async def run(self, text: str, call: GenerateFn) -> GuardedResult:
        token = set_session_id(get_session_id() or uuid.uuid4().hex)
        try:
            return await self._run(text, call)
        finally:
            reset_session_id(token)

    async def _run(self, text: str, call: GenerateFn) -> GuardedResult:
        verdict = self.guard.analyze(text)
        if verdict.status is Status.RED:
            raise PhiBlocked(verdict.block_reasons)

        active = await self.rotator.get_active_key()
        reply = await call(active.key, verdict.redacted_text, verdict.age_context)
        if not reply.ok:
            await self.rotator.report_error(active.index, reply.status)
            raise UpstreamCallFailed(reply.status, active.index)

        await self.rotator.increment_usage(active.index)
        if not reply.text:
            raise EmptyReply(active.index)

        cited = extract_pmids(reply.text)
        checked = await self.verifier.verify(cited) if cited else {}
        _log.info(
            "guarded call complete",
            extra={"slot": active.index, "status": verdict.status.value, "pmids": len(cited)},
        )
        return GuardedResult(
            verdict=verdict,
            reply_text=reply.text,
            key_index=active.index,
            pmids=checked,
        )
