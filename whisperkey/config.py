"""Configuration for WhisperKey."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import os
import yaml

from .errors import ConfigurationError


DEFAULT_DATA_DIR = Path.home() / ".whisperkey"


def default_data_dir() -> Path:
    """Data directory, honoring WHISPERKEY_HOME."""
    return Path(os.environ.get("WHISPERKEY_HOME", str(DEFAULT_DATA_DIR))).expanduser()


@dataclass
class Config:
    """Main configuration."""
    # Paths
    data_dir: Path = field(default_factory=default_data_dir)
    db_path: Path = field(default=None)
    vocabulary_path: Path = field(default=None)

    # Adaptation
    batch_size: int = 8          # Most recent samples per job
    job_workers: int = 2         # Concurrent adaptation jobs
    job_history: int = 100       # Finished jobs kept for inspection

    # Writer
    flush_timeout: float = 5.0   # Seconds to drain pending inserts at exit

    # Reference engine
    silence_rms: float = 0.0     # Waveforms quieter than this are ignored

    def __post_init__(self):
        self.data_dir = Path(self.data_dir).expanduser()
        if self.db_path is None:
            self.db_path = self.data_dir / "whisper.db"
        if self.vocabulary_path is None:
            self.vocabulary_path = self.data_dir / "vocabulary.json"

        self.validate()

        # Ensure data dir exists
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def validate(self):
        """Reject values the store and scheduler cannot run with."""
        if self.batch_size < 0:
            raise ConfigurationError(f"batch_size must be >= 0, got {self.batch_size}")
        if self.job_workers < 1:
            raise ConfigurationError(f"job_workers must be >= 1, got {self.job_workers}")
        if self.job_history < 0:
            raise ConfigurationError(f"job_history must be >= 0, got {self.job_history}")
        if self.flush_timeout < 0:
            raise ConfigurationError(f"flush_timeout must be >= 0, got {self.flush_timeout}")
        if self.silence_rms < 0:
            raise ConfigurationError(f"silence_rms must be >= 0, got {self.silence_rms}")

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """Load config from file or use defaults."""
        if path is None:
            path = default_data_dir() / "config.yaml"
        path = Path(path)

        if path.exists():
            with open(path) as f:
                try:
                    data = yaml.safe_load(f)
                except yaml.YAMLError as e:
                    raise ConfigurationError(f"Invalid config file {path}: {e}") from e
                return cls._from_dict(data or {})

        return cls()

    @classmethod
    def _from_dict(cls, data: dict) -> "Config":
        """Create config from dict."""
        if not isinstance(data, dict):
            raise ConfigurationError("Config file must contain a mapping")

        kwargs = {}

        if "data_dir" in data:
            kwargs["data_dir"] = Path(data["data_dir"])

        for key, cast in (
            ("batch_size", int),
            ("job_workers", int),
            ("job_history", int),
            ("flush_timeout", float),
            ("silence_rms", float),
        ):
            if key in data:
                try:
                    kwargs[key] = cast(data[key])
                except (TypeError, ValueError) as e:
                    raise ConfigurationError(f"Invalid value for {key}: {data[key]!r}") from e

        return cls(**kwargs)

    def save(self, path: Optional[Path] = None):
        """Save config to file."""
        if path is None:
            path = self.data_dir / "config.yaml"

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "data_dir": str(self.data_dir),
            "batch_size": self.batch_size,
            "job_workers": self.job_workers,
            "job_history": self.job_history,
            "flush_timeout": self.flush_timeout,
            "silence_rms": self.silence_rms,
        }

        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False)


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get global config instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Optional[Config]):
    """Set global config instance."""
    global _config
    _config = config
