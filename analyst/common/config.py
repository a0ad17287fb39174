"""
Configuration Management for the Market Analyst

Loads configuration from ~/.analyst/config.json and environment variables.
The resulting AnalystConfig is passed explicitly into each component.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

logger = logging.getLogger("analyst.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".analyst"
CONFIG_PATH = CONFIG_DIR / "config.json"
LOGS_DIR = CONFIG_DIR / "logs"
STORE_DIR = CONFIG_DIR / "store"


@dataclass
class LLMConfig:
    """Generative model provider configuration"""
    provider: str = "google"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-1.5-flash-latest"
    max_tokens: int = 2048
    timeout: float = 60.0


@dataclass
class EmbeddingConfig:
    """Embedding model configuration"""
    provider: str = "google"
    model: str = "models/embedding-001"
    max_input_chars: int = 2048
    timeout: float = 30.0


@dataclass
class IngestionConfig:
    """Chunking and ingestion configuration"""
    chunk_size: int = 1000
    overlap: int = 200
    embed_chunks: bool = True  # False stores chunks without vectors (keyword retrieval)
    max_workers: int = 1  # 1 = sequential embedding calls
    clean_text: bool = True


@dataclass
class ExtractionConfig:
    """Paginated (PDF) extraction configuration"""
    window_size: int = 10
    large_window_size: int = 5
    large_file_threshold_mb: float = 20.0
    max_file_size_mb: float = 50.0
    fetch_timeout: float = 30.0


@dataclass
class RetrieverConfig:
    """Retriever and synthesizer configuration"""
    mode: str = "auto"  # "auto", "vector" or "keyword"
    topk: int = 5
    context_topk: int = 10  # findings / structured extraction
    source_preview_chars: int = 100
    keyword_confidence: float = 0.8


@dataclass
class StoreConfig:
    """Document store configuration"""
    backend: str = "memory"  # "memory" or "json"
    path: str = str(STORE_DIR)


@dataclass
class AnalystConfig:
    """Main analyst configuration"""
    llm: LLMConfig = field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    retriever: RetrieverConfig = field(default_factory=RetrieverConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    defaults = LLMConfig()
    return LLMConfig(
        provider=llm_data.get("provider", defaults.provider),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", defaults.anthropic_model),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", defaults.openai_model),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", defaults.google_model),
        max_tokens=int(llm_data.get("max_tokens", defaults.max_tokens)),
        timeout=float(llm_data.get("timeout", defaults.timeout)),
    )


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    defaults = EmbeddingConfig()
    return EmbeddingConfig(
        provider=embedding_data.get("provider", defaults.provider),
        model=embedding_data.get("model", defaults.model),
        max_input_chars=int(embedding_data.get("max_input_chars", defaults.max_input_chars)),
        timeout=float(embedding_data.get("timeout", defaults.timeout)),
    )


def _parse_ingestion_config(data: dict) -> IngestionConfig:
    """Parse ingestion section from config dict"""
    ingestion_data = data.get("ingestion", {})
    return IngestionConfig(
        chunk_size=int(ingestion_data.get("chunk_size", 1000)),
        overlap=int(ingestion_data.get("overlap", 200)),
        embed_chunks=bool(ingestion_data.get("embed_chunks", True)),
        max_workers=int(ingestion_data.get("max_workers", 1)),
        clean_text=bool(ingestion_data.get("clean_text", True)),
    )


def _parse_extraction_config(data: dict) -> ExtractionConfig:
    """Parse extraction section from config dict"""
    extraction_data = data.get("extraction", {})
    return ExtractionConfig(
        window_size=int(extraction_data.get("window_size", 10)),
        large_window_size=int(extraction_data.get("large_window_size", 5)),
        large_file_threshold_mb=float(extraction_data.get("large_file_threshold_mb", 20.0)),
        max_file_size_mb=float(extraction_data.get("max_file_size_mb", 50.0)),
        fetch_timeout=float(extraction_data.get("fetch_timeout", 30.0)),
    )


def _parse_retriever_config(data: dict) -> RetrieverConfig:
    """Parse retriever section from config dict"""
    retriever_data = data.get("retriever", {})
    return RetrieverConfig(
        mode=retriever_data.get("mode", "auto"),
        topk=int(retriever_data.get("topk", 5)),
        context_topk=int(retriever_data.get("context_topk", 10)),
        source_preview_chars=int(retriever_data.get("source_preview_chars", 100)),
        keyword_confidence=float(retriever_data.get("keyword_confidence", 0.8)),
    )


def _parse_store_config(data: dict) -> StoreConfig:
    """Parse store section from config dict"""
    store_data = data.get("store", {})
    return StoreConfig(
        backend=store_data.get("backend", "memory"),
        path=store_data.get("path", str(STORE_DIR)),
    )


def load_config() -> AnalystConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.analyst/config.json)
    3. Default values
    """
    config = AnalystConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.llm = _parse_llm_config(data)
            config.embedding = _parse_embedding_config(data)
            config.ingestion = _parse_ingestion_config(data)
            config.extraction = _parse_extraction_config(data)
            config.retriever = _parse_retriever_config(data)
            config.store = _parse_store_config(data)
        except (json.JSONDecodeError, IOError, ValueError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    # API keys and providers (tracked so save_config never persists them)
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_GENERATIVE_AI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "ANALYST_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    if os.getenv("ANALYST_EMBEDDING_PROVIDER"):
        config.embedding.provider = os.getenv("ANALYST_EMBEDDING_PROVIDER")
    if os.getenv("ANALYST_EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("ANALYST_EMBEDDING_MODEL")

    if os.getenv("ANALYST_CHUNK_SIZE"):
        config.ingestion.chunk_size = int(os.getenv("ANALYST_CHUNK_SIZE"))
    if os.getenv("ANALYST_CHUNK_OVERLAP"):
        config.ingestion.overlap = int(os.getenv("ANALYST_CHUNK_OVERLAP"))

    if os.getenv("ANALYST_RETRIEVAL_MODE"):
        config.retriever.mode = os.getenv("ANALYST_RETRIEVAL_MODE")

    if os.getenv("ANALYST_STORE_BACKEND"):
        config.store.backend = os.getenv("ANALYST_STORE_BACKEND")
    if os.getenv("ANALYST_STORE_PATH"):
        config.store.path = os.getenv("ANALYST_STORE_PATH")

    return config


def save_config(config: AnalystConfig) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    _llm_api_key_fields = {
        "anthropic_api_key", "openai_api_key", "google_api_key",
    }
    llm_section = {
        "provider": config.llm.provider,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "openai_api_key": config.llm.openai_api_key,
        "openai_model": config.llm.openai_model,
        "google_api_key": config.llm.google_api_key,
        "google_model": config.llm.google_model,
        "max_tokens": config.llm.max_tokens,
        "timeout": config.llm.timeout,
    }
    for key in _llm_api_key_fields:
        if key in env_sourced:
            llm_section[key] = ""

    data = {
        "llm": llm_section,
        "embedding": {
            "provider": config.embedding.provider,
            "model": config.embedding.model,
            "max_input_chars": config.embedding.max_input_chars,
            "timeout": config.embedding.timeout,
        },
        "ingestion": {
            "chunk_size": config.ingestion.chunk_size,
            "overlap": config.ingestion.overlap,
            "embed_chunks": config.ingestion.embed_chunks,
            "max_workers": config.ingestion.max_workers,
            "clean_text": config.ingestion.clean_text,
        },
        "extraction": {
            "window_size": config.extraction.window_size,
            "large_window_size": config.extraction.large_window_size,
            "large_file_threshold_mb": config.extraction.large_file_threshold_mb,
            "max_file_size_mb": config.extraction.max_file_size_mb,
            "fetch_timeout": config.extraction.fetch_timeout,
        },
        "retriever": {
            "mode": config.retriever.mode,
            "topk": config.retriever.topk,
            "context_topk": config.retriever.context_topk,
            "source_preview_chars": config.retriever.source_preview_chars,
            "keyword_confidence": config.retriever.keyword_confidence,
        },
        "store": {
            "backend": config.store.backend,
            "path": config.store.path,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    STORE_DIR.mkdir(parents=True, exist_ok=True)
