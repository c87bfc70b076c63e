"""On-device personalization: sample capture and background adaptation.

Provides:
- SampleStore: Durable append-only log of (waveform, transcript) samples
- StoreHandle: One shared store per process, built on first use
- SessionSampler: Stores the last recognition result of each input session
- AdaptationScheduler: Background jobs that feed recent samples to an engine

Architecture:
    Input session → SessionSampler (latest waveform + text)
                          ↓ end()
                   SampleStore.insert (single writer thread)
                          ↓
                   AdaptationScheduler.enqueue
                          ↓ worker pool
                   sample_batch(8) → AdaptationEngine.adapt(batch)

Usage:
    from whisperkey.learning import (
        SessionSampler,
        AdaptationScheduler,
        VocabularyAdaptationEngine,
    )

    scheduler = AdaptationScheduler(VocabularyAdaptationEngine())
    sampler = SessionSampler(scheduler=scheduler)
"""

from .sample_store import (
    # Store
    SampleStore,
    StoreHandle,
    get_sample_store,
    reset_sample_store,
)

from .engine import (
    RecognitionSource,
    AdaptationEngine,
    NullAdaptationEngine,
    VocabularyAdaptationEngine,
    waveform_rms,
)

from .scheduler import (
    AdaptationScheduler,
)

from .sampler import (
    SessionSampler,
)

__all__ = [
    # Store
    "SampleStore",
    "StoreHandle",
    "get_sample_store",
    "reset_sample_store",

    # Engines
    "RecognitionSource",
    "AdaptationEngine",
    "NullAdaptationEngine",
    "VocabularyAdaptationEngine",
    "waveform_rms",

    # Scheduling
    "AdaptationScheduler",

    # Sessions
    "SessionSampler",
]
