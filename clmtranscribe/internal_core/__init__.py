from .config import TranscribeConfig, load_config

__all__ = ["TranscribeConfig", "load_config"]
