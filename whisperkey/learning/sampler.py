"""Session sampling - bridges a live input session to the SampleStore.

Usage:
    from whisperkey.learning import SessionSampler, AdaptationScheduler

    sampler = SessionSampler(scheduler=AdaptationScheduler(engine))

    sampler.start()
    sampler.on_result("see you tmrw", waveform)   # from the recognizer
    sampler.end("see you tomorrow")              # user-corrected text

    # end() persists one sample and requests one adaptation job
"""

import logging
import secrets
import threading
from concurrent.futures import Future
from typing import Optional

from ..errors import StorageError
from .engine import RecognitionSource
from .sample_store import SampleStore, get_sample_store
from .scheduler import AdaptationScheduler

logger = logging.getLogger(__name__)


class SessionSampler:
    """Keeps the latest recognition result of a session and stores it at the end.

    Storage failures never reach the session: they are logged and dropped.
    """

    def __init__(
        self,
        store: Optional[SampleStore] = None,
        scheduler: Optional[AdaptationScheduler] = None,
        source: Optional[RecognitionSource] = None,
    ):
        self._store = store
        self.scheduler = scheduler
        self.source = source

        self._lock = threading.Lock()
        self._session_id: Optional[str] = None
        self._waveform: Optional[bytes] = None
        self._candidate: Optional[str] = None

    @property
    def store(self) -> SampleStore:
        return self._store or get_sample_store()

    @property
    def active(self) -> bool:
        return self._session_id is not None

    @property
    def candidate_text(self) -> Optional[str]:
        return self._candidate

    def start(self) -> str:
        """Begin a session. Any unfinished previous session is discarded."""
        with self._lock:
            if self._session_id is not None:
                logger.debug(f"Session {self._session_id} replaced before end")
            self._session_id = secrets.token_hex(6)
            self._waveform = None
            self._candidate = None
            session_id = self._session_id

        if self.source is not None:
            self.source.start_capture(self.on_result)

        logger.debug(f"Session {session_id} started")
        return session_id

    def on_result(self, text: str, waveform: bytes):
        """Retain the most recent (waveform, candidate text) pair."""
        with self._lock:
            if self._session_id is None:
                logger.debug("Recognition result outside a session, ignored")
                return
            self._waveform = waveform
            self._candidate = text

    def end(self, corrected_transcript: Optional[str] = None) -> Optional[Future]:
        """Finish the session.

        Stores (waveform, corrected_transcript) once if a waveform was
        captured and a corrected transcript is available, then requests an
        adaptation job. The insert is already queued when this returns.

        Returns:
            Future for the assigned sample id, or None if nothing was stored
        """
        with self._lock:
            session_id = self._session_id
            waveform = self._waveform
            self._session_id = None
            self._waveform = None
            self._candidate = None

        if session_id is None:
            logger.debug("end() without an active session, ignored")
            return None

        if self.source is not None:
            self.source.stop_capture()

        future = None
        if waveform is None:
            logger.debug(f"Session {session_id} captured no waveform, nothing stored")
        elif corrected_transcript is None:
            logger.debug(f"Session {session_id} has no final transcript, nothing stored")
        else:
            future = self._submit(session_id, waveform, corrected_transcript)

        if self.scheduler is not None:
            self.scheduler.enqueue()

        return future

    def _submit(self, session_id: str, waveform: bytes, transcript: str) -> Optional[Future]:
        try:
            future = self.store.insert(waveform, transcript)
        except StorageError as e:
            logger.warning(f"Session {session_id} sample dropped: {e}")
            return None

        future.add_done_callback(lambda f: self._log_outcome(session_id, f))
        return future

    def _log_outcome(self, session_id: str, future: Future):
        error = future.exception()
        if error is not None:
            logger.warning(f"Session {session_id} sample dropped: {error}")
        else:
            logger.debug(f"Session {session_id} stored as sample {future.result()}")
