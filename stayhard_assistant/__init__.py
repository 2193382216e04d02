"""
Stay Hard Assistant - voice productivity coach with a real-time conversation core.
"""

import os
import warnings

# Suppress verbose warnings for cleaner output
os.environ.setdefault("TOKENIZERS_PARALLELISM", "false")
os.environ.setdefault("CT2_VERBOSE", "0")

warnings.filterwarnings("ignore", category=FutureWarning)

# Suppress onnxruntime and faster-whisper chatter
import logging
logging.getLogger("onnxruntime").setLevel(logging.ERROR)
logging.getLogger("faster_whisper").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)

__version__ = "0.1.0"

from stayhard_assistant.config import CoachConfig, load_config

__all__ = ["CoachConfig", "load_config", "__version__"]
