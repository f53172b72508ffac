"""
Assembles provider adapters into the ordered chain the gateway walks.
"""

import logging
from typing import List, Optional

from configs.config import get_config
from src.transcription.providers.assemblyai import AssemblyAIProvider
from src.transcription.providers.base import SpeechProvider
from src.transcription.providers.google_speech import GoogleSpeechProvider
from src.transcription.providers.huggingface import HuggingFaceProvider, is_valid_api_key
from src.transcription.providers.local_whisper import LocalWhisperProvider

logger = logging.getLogger(__name__)
cfg = get_config()


def build_provider_chain(
    huggingface_api_key: Optional[str] = None,
    assemblyai_api_key: Optional[str] = None,
    local_whisper_model: Optional[str] = None,
    huggingface_models=cfg.HUGGINGFACE_MODELS,
    google_api_key: Optional[str] = None,
) -> List[SpeechProvider]:
    """
    Build the ordered provider chain from credentials.

    Hugging Face (one entry per candidate model, only with a well-formed key),
    then AssemblyAI, then Google Cloud Speech-to-Text, then the optional local
    faster-whisper model.
    """
    chain: List[SpeechProvider] = []

    if is_valid_api_key(huggingface_api_key):
        chain.extend(HuggingFaceProvider(huggingface_api_key, model) for model in huggingface_models)
    elif huggingface_api_key:
        logger.warning("HUGGINGFACE_API_KEY does not start with '%s'; skipping Hugging Face", cfg.HUGGINGFACE_KEY_PREFIX)
    else:
        logger.info("Hugging Face API key not configured")

    if assemblyai_api_key:
        chain.append(AssemblyAIProvider(assemblyai_api_key))
    else:
        logger.info("AssemblyAI API key not configured")

    if google_api_key:
        chain.append(GoogleSpeechProvider(google_api_key))

    if local_whisper_model:
        chain.append(LocalWhisperProvider(local_whisper_model))

    logger.info("Provider chain: %s", [f"{p.provider}:{p.model}" for p in chain] or "empty")
    return chain


def build_default_chain() -> List[SpeechProvider]:
    return build_provider_chain(
        huggingface_api_key=cfg.HUGGINGFACE_API_KEY,
        assemblyai_api_key=cfg.ASSEMBLYAI_API_KEY,
        local_whisper_model=cfg.LOCAL_WHISPER_MODEL,
        google_api_key=cfg.GOOGLE_CLOUD_API_KEY,
    )
