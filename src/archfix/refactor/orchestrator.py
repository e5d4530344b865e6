"""Run the pipeline over many source units with bounded concurrency.

Per unit: cache lookup → chunk → (context + validation loop per chunk) →
aggregate → cache store → structural merge. Units run on one worker pool and
their chunks on a second one; both pools are created by :meth:`run_all` and
shut down before it returns. A unit that raises is recorded as an ``error``
outcome; a unit still running when ``shutdown_timeout`` expires is recorded
as ``timed_out`` and abandoned.

Abandoning is real: the run's stop event is set, so no further model call is
started for the unit and nothing it computed reaches the cache. The pools run
on daemon threads, so a model call already in flight cannot keep the process
alive after the run has returned.

Outputs are written by the caller-supplied ``sink`` only after a unit has
completed within the deadline, so abandoned units never write.
"""

from __future__ import annotations

import concurrent.futures as cf
import itertools
import queue
import threading
from dataclasses import replace
from pathlib import Path
from typing import Callable

from loguru import logger

from archfix.chunking import split_with_config
from archfix.config import ChunkingCfg
from archfix.db.cache import ContentCache
from archfix.models import Chunk, ChunkVerdict, FileVerdict, SourceUnit, UnitOutcome, UnitStatus
from archfix.rag.assembler import ContextAssembler
from archfix.rag.service import RagService
from archfix.refactor.aggregator import aggregate
from archfix.refactor.merger import StructuralMerger
from archfix.refactor.validation import ValidationLoop, fallback_verdict

Sink = Callable[[SourceUnit, str], Path]


class UnitAbandoned(RuntimeError):
    """The run stopped waiting for this unit."""


class DaemonPool(cf.Executor):
    """Bounded worker pool on daemon threads.

    Unlike :class:`concurrent.futures.ThreadPoolExecutor`, interpreter exit
    does not join these workers.
    """

    def __init__(self, max_workers: int, thread_name_prefix: str = "archfix") -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._max_workers = max_workers
        self._prefix = thread_name_prefix
        self._work: queue.SimpleQueue = queue.SimpleQueue()
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()
        self._closed = False
        self._ids = itertools.count()

    def submit(self, fn, /, *args, **kwargs) -> cf.Future:
        with self._lock:
            if self._closed:
                raise RuntimeError("cannot schedule new futures after shutdown")
            future: cf.Future = cf.Future()
            self._work.put((future, fn, args, kwargs))
            if len(self._threads) < self._max_workers:
                thread = threading.Thread(
                    target=self._worker, name=f"{self._prefix}_{next(self._ids)}", daemon=True
                )
                self._threads.append(thread)
                thread.start()
            return future

    def _worker(self) -> None:
        while True:
            item = self._work.get()
            if item is None:
                return
            future, fn, args, kwargs = item
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = fn(*args, **kwargs)
            except BaseException as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        with self._lock:
            self._closed = True
            if cancel_futures:
                while True:
                    try:
                        item = self._work.get_nowait()
                    except queue.Empty:
                        break
                    if item is not None:
                        item[0].cancel()
            for _ in self._threads:
                self._work.put(None)
        if wait:
            for thread in self._threads:
                thread.join()


class Orchestrator:
    def __init__(
        self,
        *,
        loop: ValidationLoop,
        assembler: ContextAssembler,
        merger: StructuralMerger,
        cache: ContentCache,
        chunking: ChunkingCfg | None = None,
        top_k: int = 3,
        max_attempts: int | None = None,
        concurrency: int = 4,
        chunk_concurrency: int = 4,
        shutdown_timeout: float = 60.0,
        rag: RagService | None = None,
        index_processed: bool = False,
    ) -> None:
        self.loop = loop
        self.assembler = assembler
        self.merger = merger
        self.cache = cache
        self.chunking = chunking or ChunkingCfg()
        self.top_k = top_k
        self.max_attempts = max_attempts
        self.concurrency = concurrency
        self.chunk_concurrency = chunk_concurrency
        self.shutdown_timeout = shutdown_timeout
        self.rag = rag
        self.index_processed = index_processed

    # ------------------------------------------------------------------
    # Single unit
    # ------------------------------------------------------------------

    def _run_chunk(self, chunk: Chunk, stop: threading.Event | None = None) -> ChunkVerdict:
        if stop is not None and stop.is_set():
            return fallback_verdict(chunk, attempts=0)
        try:
            context = self.assembler.assemble(chunk, self.top_k)
            return self.loop.run(chunk, context, self.max_attempts, cancel=stop)
        except Exception as exc:
            logger.error("{} chunk {} failed: {}", chunk.unit_id, chunk.index, exc)
            return fallback_verdict(chunk, attempts=0)

    def evaluate(
        self, unit: SourceUnit, chunk_pool: cf.Executor, stop: threading.Event | None = None
    ) -> tuple[FileVerdict, bool]:
        """FileVerdict for *unit* and whether it came from the cache.

        Raises:
            UnitAbandoned: *stop* was set while the chunks ran; nothing is cached.
        """
        cached = self.cache.get(unit.hash)
        if cached is not None:
            logger.info("{}: cache hit", unit.id)
            return replace(cached, unit_id=unit.id), True

        chunks = split_with_config(unit, self.chunking)
        logger.info("{}: {} chunk(s)", unit.id, len(chunks))
        futures = [chunk_pool.submit(self._run_chunk, c, stop) for c in chunks]
        verdicts = [f.result() for f in cf.as_completed(futures)]
        if stop is not None and stop.is_set():
            raise UnitAbandoned(unit.id)
        verdict = aggregate(unit, verdicts)
        self.cache.put(unit.hash, verdict)
        return verdict, False

    def process_unit(
        self, unit: SourceUnit, chunk_pool: cf.Executor, stop: threading.Event | None = None
    ) -> UnitOutcome:
        verdict, hit = self.evaluate(unit, chunk_pool, stop)

        if self.index_processed and self.rag is not None:
            self.rag.index_code_snippets({unit.id: unit.text})

        if not verdict.violation:
            return UnitOutcome(unit.id, UnitStatus.OK, verdict=verdict, cache_hit=hit)

        text, merge = self.merger.merge(unit, verdict)
        logger.info("{}: violation, merge {}", unit.id, merge.status.value)
        return UnitOutcome(
            unit.id,
            UnitStatus.VIOLATION,
            verdict=verdict,
            merge=merge,
            cache_hit=hit,
            final_text=text,
        )

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run_all(
        self,
        units: list[SourceUnit],
        concurrency: int | None = None,
        sink: Sink | None = None,
        on_done: Callable[[UnitOutcome], None] | None = None,
    ) -> list[UnitOutcome]:
        """Process *units*; one outcome per unit, in input order.

        Args:
            sink: Writes a violating unit's merged text; returns the path written.
            on_done: Progress callback, invoked as each unit completes.
        """
        workers = concurrency or self.concurrency
        unit_pool = DaemonPool(workers, thread_name_prefix="archfix-unit")
        chunk_pool = DaemonPool(self.chunk_concurrency, thread_name_prefix="archfix-chunk")
        stop = threading.Event()
        futures: dict[cf.Future[UnitOutcome], SourceUnit] = {}
        outcomes: dict[str, UnitOutcome] = {}
        try:
            for unit in units:
                futures[unit_pool.submit(self.process_unit, unit, chunk_pool, stop)] = unit

            done, pending = cf.wait(futures, timeout=self.shutdown_timeout)
            if pending:
                stop.set()
            for future in done:
                unit = futures[future]
                outcome = self._collect(unit, future, sink)
                outcomes[unit.id] = outcome
                if on_done is not None:
                    on_done(outcome)
            for future in pending:
                unit = futures[future]
                future.cancel()
                logger.error("{}: not finished within {}s; abandoned", unit.id, self.shutdown_timeout)
                outcomes[unit.id] = UnitOutcome(
                    unit.id, UnitStatus.TIMED_OUT, error=f"timed out after {self.shutdown_timeout}s"
                )
        finally:
            stop.set()
            unit_pool.shutdown(wait=False, cancel_futures=True)
            chunk_pool.shutdown(wait=False, cancel_futures=True)

        return [outcomes[u.id] for u in units]

    @staticmethod
    def _collect(unit: SourceUnit, future: cf.Future[UnitOutcome], sink: Sink | None) -> UnitOutcome:
        try:
            outcome = future.result()
        except Exception as exc:
            logger.exception("{}: processing failed", unit.id)
            return UnitOutcome(unit.id, UnitStatus.ERROR, error=str(exc) or type(exc).__name__)

        if sink is not None and outcome.status is UnitStatus.VIOLATION and outcome.final_text is not None:
            try:
                outcome.output_path = sink(unit, outcome.final_text)
            except (OSError, ValueError) as exc:
                logger.error("{}: writing output failed: {}", unit.id, exc)
                outcome.status = UnitStatus.ERROR
                outcome.error = f"write failed: {exc}"
        return outcome
