"""WhisperKey - On-device voice input personalization.

Captures voice-to-text samples from input sessions, keeps them in a
durable local log and feeds recent batches to an adaptation engine in
the background. Nothing leaves the device.

Quick Start:
    from whisperkey import (
        SessionSampler,
        AdaptationScheduler,
        VocabularyAdaptationEngine,
    )

    scheduler = AdaptationScheduler(VocabularyAdaptationEngine())
    sampler = SessionSampler(scheduler=scheduler)

    sampler.start()
    sampler.on_result("recognized text", waveform)
    sampler.end("corrected text")
"""

__version__ = "0.1.0"

# Core types
from .types import (
    Sample,
    AdaptationJob,
    JobStatus,
)

# Exceptions
from .errors import (
    WhisperKeyError,
    ConfigurationError,
    StorageError,
    InitializationError,
    AdaptationError,
)

# Configuration
from .config import (
    Config,
    get_config,
    set_config,
)

# Store, sessions, scheduling
from .learning import (
    SampleStore,
    StoreHandle,
    get_sample_store,
    reset_sample_store,
    SessionSampler,
    AdaptationScheduler,
    RecognitionSource,
    AdaptationEngine,
    NullAdaptationEngine,
    VocabularyAdaptationEngine,
)

__all__ = [
    # Version
    "__version__",

    # Core types
    "Sample",
    "AdaptationJob",
    "JobStatus",

    # Exceptions
    "WhisperKeyError",
    "ConfigurationError",
    "StorageError",
    "InitializationError",
    "AdaptationError",

    # Configuration
    "Config",
    "get_config",
    "set_config",

    # Store
    "SampleStore",
    "StoreHandle",
    "get_sample_store",
    "reset_sample_store",

    # Sessions & scheduling
    "SessionSampler",
    "AdaptationScheduler",

    # Engines
    "RecognitionSource",
    "AdaptationEngine",
    "NullAdaptationEngine",
    "VocabularyAdaptationEngine",
]
