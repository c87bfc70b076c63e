"""Recognition and adaptation engine interfaces.

The core only talks to engines through two narrow seams:
- RecognitionSource: emits (text, waveform) results during a session
- AdaptationEngine: consumes a batch of samples, most recent first

Reference engines:
- NullAdaptationEngine: logs batches, changes nothing
- VocabularyAdaptationEngine: frequency-based personal vocabulary
"""

from abc import ABC, abstractmethod
from collections import Counter
from pathlib import Path
from typing import Callable, List, Optional, Tuple
import json
import logging
import threading

import numpy as np

from ..types import Sample

logger = logging.getLogger(__name__)


ResultCallback = Callable[[str, bytes], None]


class RecognitionSource(ABC):
    """Base interface for speech capture + recognition."""

    @abstractmethod
    def start_capture(self, on_result: ResultCallback):
        """Start capturing; call on_result(text, waveform) per result."""
        pass

    @abstractmethod
    def stop_capture(self):
        """Stop capturing. No results are delivered afterwards."""
        pass


class AdaptationEngine(ABC):
    """Base interface for on-device model adaptation."""

    @abstractmethod
    def adapt(self, batch: List[Sample]) -> None:
        """Update the model from a batch.

        An empty batch must be treated as a no-op. Any exception marks the
        calling job as failed.
        """
        pass


def waveform_rms(waveform: bytes) -> float:
    """RMS level of 16-bit little-endian PCM, normalized to [0, 1]."""
    usable = len(waveform) - (len(waveform) % 2)
    if usable == 0:
        return 0.0
    pcm = np.frombuffer(waveform[:usable], dtype="<i2").astype(np.float64)
    return float(np.sqrt(np.mean(pcm ** 2)) / 32768.0)


class NullAdaptationEngine(AdaptationEngine):
    """Accepts batches without touching any model."""

    def __init__(self):
        self.batches_seen = 0

    def adapt(self, batch: List[Sample]) -> None:
        self.batches_seen += 1
        logger.info(f"Adaptation skipped for {len(batch)} samples (null engine)")


class VocabularyAdaptationEngine(AdaptationEngine):
    """Learns which words the user actually says.

    Word counts from corrected transcripts are accumulated across batches
    and persisted as JSON. Near-silent waveforms are ignored.
    """

    def __init__(self, vocabulary_path: Optional[Path] = None, silence_rms: Optional[float] = None):
        if vocabulary_path is None or silence_rms is None:
            from ..config import get_config
            config = get_config()
            vocabulary_path = vocabulary_path or config.vocabulary_path
            silence_rms = config.silence_rms if silence_rms is None else silence_rms

        self.vocabulary_path = Path(vocabulary_path)
        self.silence_rms = silence_rms

        self._lock = threading.Lock()
        self._counts: Counter = Counter()
        self._load()

    def _load(self):
        if not self.vocabulary_path.exists():
            return
        with open(self.vocabulary_path) as f:
            data = json.load(f)
        self._counts.update({str(k): int(v) for k, v in data.get("words", {}).items()})
        logger.debug(f"Loaded {len(self._counts)} vocabulary entries from {self.vocabulary_path}")

    def _save(self):
        self.vocabulary_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.vocabulary_path.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            json.dump({"words": dict(self._counts.most_common())}, f, indent=2, ensure_ascii=False)
        tmp_path.replace(self.vocabulary_path)

    def adapt(self, batch: List[Sample]) -> None:
        if not batch:
            logger.debug("Empty batch, vocabulary unchanged")
            return

        words = Counter()
        skipped = 0
        for sample in batch:
            if waveform_rms(sample.waveform) < self.silence_rms:
                skipped += 1
                continue
            words.update(tokenize(sample.transcript))

        with self._lock:
            self._counts.update(words)
            self._save()

        logger.info(
            f"Vocabulary updated from {len(batch) - skipped} samples "
            f"({skipped} silent, {len(self._counts)} words known)"
        )

    def top_words(self, n: int = 20) -> List[Tuple[str, int]]:
        with self._lock:
            return self._counts.most_common(n)

    def count(self, word: str) -> int:
        with self._lock:
            return self._counts.get(word.lower(), 0)


def tokenize(text: str) -> List[str]:
    return [w for w in (t.strip(".,!?;:\"'()").lower() for t in text.split()) if w]
