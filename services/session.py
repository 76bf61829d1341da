# services/session.py
"""
The single active draw session and the controller that owns it.

A session goes commit -> wait for blocks -> draw -> proofs. Only one may be
in flight; starting another while it waits raises SessionBusyError, and a
new session replaces the finished one (no history is kept).
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

from blake3 import blake3

from errors import BBRNGError, ConfigError, SessionBusyError
from services.blocks import BlockSet, BlockWaiter, CancelToken, WaiterState
from services.commit import DEFAULT_TAG, Commitment, build_commitment, validate_params
from services.proof import long_proof, short_proof
from services.sample import MAX_ITERATIONS, DrawResult, draw_all
from services.tip import TipMonitor
from sources.bitcoin import BlockSource, failover_for
from streams import SESSION_CHANNEL, StreamHub

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProofReady:
    short_proof: str
    long_proof: str
    commitment: str

    def to_dict(self) -> dict:
        return {"shortProof": self.short_proof, "longProof": self.long_proof, "commitment": self.commitment}


ProofListener = Callable[[ProofReady], Union[None, Awaitable[None]]]


class Session:
    def __init__(self, commitment: Commitment, token: CancelToken):
        self.commitment = commitment
        self.id = blake3(commitment.text.encode("utf-8")).hexdigest()[:16]
        self.block_set = BlockSet(commitment.start, commitment.blocks)
        self.token = token
        self.waiter: Optional[BlockWaiter] = None
        self.draws: List[DrawResult] = []
        self.proof: Optional[ProofReady] = None
        self.error: Optional[str] = None

    @property
    def state(self) -> WaiterState:
        return self.waiter.state if self.waiter is not None else WaiterState.IDLE

    def to_dict(self) -> dict:
        return {
            "sessionId": self.id,
            "state": self.state.value,
            "commitment": self.commitment.to_dict(),
            "hashes": self.block_set.hashes,
            "missing": self.block_set.missing,
            "draws": [d.to_dict() for d in self.draws],
            "proof": self.proof.to_dict() if self.proof else None,
            "error": self.error,
        }


class SessionController:
    def __init__(self, sources: Dict[str, BlockSource], *, monitor: Optional[TipMonitor] = None,
                 hub: Optional[StreamHub] = None, poll_interval: float = 10.0, cancel_check: float = 0.25,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 max_iterations: int = MAX_ITERATIONS, tag: str = DEFAULT_TAG,
                 default_provider: str = "mp"):
        self.sources = sources
        self.monitor = monitor
        self.hub = hub
        self.poll_interval = poll_interval
        self.cancel_check = cancel_check
        self.max_iterations = max_iterations
        self.tag = tag
        self.default_provider = default_provider
        self.session: Optional[Session] = None
        self.pending: Optional[Commitment] = None
        self._sleep = sleep
        self._token: Optional[CancelToken] = None
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[ProofListener] = []

    @property
    def busy(self) -> bool:
        return self._token is not None

    def on_proof_ready(self, callback: ProofListener) -> ProofListener:
        self._listeners.append(callback)
        return callback

    def source_for(self, provider: str) -> BlockSource:
        if provider not in self.sources:
            raise ConfigError(f"unknown provider {provider!r}")
        return failover_for(provider, self.sources)

    async def prepare(self, provider: str, lo: int, hi: int, draws: int, blocks: int) -> Commitment:
        """Fix and hold a commitment to publish before pressing begin."""
        self._ensure_idle()
        validate_params(provider, lo, hi, draws, blocks)
        c = await build_commitment(self.source_for(provider), lo, hi, draws, blocks, tag=self.tag)
        # a session may have been claimed while the tip was being read
        self._ensure_idle()
        self.pending = c
        await self._emit({"type": "commit", **c.to_dict()})
        return c

    async def begin(self, provider: Optional[str] = None, lo: Optional[int] = None, hi: Optional[int] = None,
                    draws: Optional[int] = None, blocks: Optional[int] = None) -> Session:
        """
        Run a session to the end. The pending commitment is used when there is
        one; any parameter given must then match it. Otherwise `lo` and `hi`
        are required and draws / blocks default to 1.
        """
        token, commitment = self._claim(provider, lo, hi, draws, blocks)
        return await self._begin(token, commitment, provider, lo, hi, draws, blocks)

    def start(self, provider: Optional[str] = None, lo: Optional[int] = None, hi: Optional[int] = None,
              draws: Optional[int] = None, blocks: Optional[int] = None) -> asyncio.Task:
        token, commitment = self._claim(provider, lo, hi, draws, blocks)
        return self._spawn(self._begin(token, commitment, provider, lo, hi, draws, blocks))

    async def launch(self, provider: Optional[str] = None, lo: Optional[int] = None, hi: Optional[int] = None,
                     draws: Optional[int] = None, blocks: Optional[int] = None) -> Tuple[Commitment, asyncio.Task]:
        """
        Claim the controller, fix the commitment and wait for blocks in the
        background. Returns the commitment the session runs on.
        """
        token, commitment = self._claim(provider, lo, hi, draws, blocks)
        if commitment is None:
            try:
                commitment = await self._build(provider, lo, hi, draws, blocks)
            except BaseException:
                self._release(token)
                raise
        return commitment, self._spawn(self._begin(token, commitment))

    def stop(self) -> bool:
        if self._token is None:
            return False
        self._token.cancel()
        logger.info("stop requested")
        return True

    def _ensure_idle(self) -> None:
        if self.busy:
            raise SessionBusyError("a session is already waiting")

    def _claim(self, provider, lo, hi, draws, blocks) -> Tuple[CancelToken, Optional[Commitment]]:
        """Take the session slot and the pending commitment in one step."""
        self._ensure_idle()
        commitment = self.pending
        if commitment is not None:
            given = {"provider": (provider, commitment.provider), "min": (lo, commitment.lo),
                     "max": (hi, commitment.hi), "n": (draws, commitment.draws), "k": (blocks, commitment.blocks)}
            conflicts = [name for name, (want, have) in given.items() if want is not None and want != have]
            if conflicts:
                raise ConfigError(f"parameters differ from the prepared commitment: {', '.join(conflicts)}")
        else:
            if lo is None or hi is None:
                raise ConfigError("no prepared commitment and no draw range")
            validate_params(provider or self.default_provider, lo, hi, draws or 1, blocks or 1)
        self.pending = None
        self._token = CancelToken()
        return self._token, commitment

    def _release(self, token: CancelToken) -> None:
        if self._token is token:
            self._token = None

    def _spawn(self, coro: Awaitable[Session]) -> asyncio.Task:
        self._task = asyncio.create_task(coro)
        self._task.add_done_callback(self._task_done)
        return self._task

    async def _build(self, provider, lo, hi, draws, blocks) -> Commitment:
        commitment = await build_commitment(self.source_for(provider or self.default_provider), lo, hi,
                                            draws or 1, blocks or 1, tag=self.tag)
        await self._emit({"type": "commit", **commitment.to_dict()})
        return commitment

    async def _begin(self, token: CancelToken, commitment: Optional[Commitment],
                     provider=None, lo=None, hi=None, draws=None, blocks=None) -> Session:
        try:
            if commitment is None:
                commitment = await self._build(provider, lo, hi, draws, blocks)
            session = Session(commitment, token)
            self.session = session
            await self._run(session)
            return session
        finally:
            self._release(token)

    async def _run(self, session: Session) -> None:
        c = session.commitment
        if self.monitor is not None:
            self.monitor.pause()
        try:
            session.waiter = BlockWaiter(
                self.source_for(c.provider), session.block_set,
                poll_interval=self.poll_interval, cancel_check=self.cancel_check, sleep=self._sleep,
                on_block=lambda height, h: self._emit({"type": "block.found", "sessionId": session.id,
                                                       "height": height, "hash": h}),
                on_meta=self.monitor.observe if self.monitor is not None else None,
            )
            await self._emit({"type": "block.waiting", "sessionId": session.id,
                              "start": c.start, "end": c.end_height})
            state = await session.waiter.run(session.token)
            if state is not WaiterState.COMPLETED:
                await self._emit({"type": "cancelled", "sessionId": session.id,
                                  "filled": session.block_set.filled})
                return

            try:
                session.draws = draw_all(session.block_set, c.lo, c.hi, c.draws, self.max_iterations)
            except BBRNGError as e:
                session.error = str(e)
                await self._emit({"type": "error", "sessionId": session.id, "stage": "draw", "message": str(e)})
                raise
            for d in session.draws:
                await self._emit({"type": "draw", "sessionId": session.id, **d.to_dict()})

            nums = [d.value for d in session.draws]
            proof = ProofReady(short_proof=short_proof(c, nums),
                               long_proof=long_proof(c, session.block_set.hashes, session.draws),
                               commitment=c.text)
            session.proof = proof
            logger.info("session %s done: %s", session.id, nums)
            await self._notify(session, proof)
        finally:
            if self.monitor is not None:
                self.monitor.resume()

    async def _notify(self, session: Session, proof: ProofReady) -> None:
        for cb in list(self._listeners):
            res = cb(proof)
            if inspect.isawaitable(res):
                await res
        await self._emit({"type": "proof.ready", "sessionId": session.id, **proof.to_dict()})

    async def _emit(self, event: dict) -> None:
        if self.hub is not None:
            await self.hub.emit(SESSION_CHANNEL, event)

    @staticmethod
    def _task_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("session failed: %s", exc, exc_info=exc)
