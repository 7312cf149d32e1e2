"""Recall configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (RECALL_GENERATION_MODEL, RECALL_EMBEDDING_MODEL,
     RECALL_LOG_LEVEL, RECALL_DB_PATH)
  3. Per-project recall.yaml  (working directory)
  4. Global ~/.recall/config.yaml  (defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".recall"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "recall.yaml"

# Matches: api_key, apikey, api-key, api_secret, _token (suffix), standalone token,
# standalone secret, _secret (suffix), password, passwd, credential(s).
# Does NOT match legitimate config keys like max_tokens.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "generation", "retrieval", "chunker", "ingest", "storage", "chat", "logging"]
)

_BACKENDS: frozenset[str] = frozenset(["sqlite", "memory"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding endpoint and quality gate (recall.yaml: embedding:).

    Attributes:
        model: LiteLLM embedding model string (provider/model format).
        dimensions: Fixed vector length for the whole corpus.
        batch_size: Texts embedded concurrently per group.
        batch_pause: Seconds to sleep between groups.
        max_component: Reject vectors with any |component| above this.
    """

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 10
    batch_pause: float = 0.1
    max_component: float = 10.0


@dataclass
class GenerationCfg:
    """Chat completion configuration (recall.yaml: generation:)."""

    model: str = "openai/gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 2000


@dataclass
class RetrievalCfg:
    """Similarity threshold and context budget (recall.yaml: retrieval:)."""

    similarity_threshold: float = 0.7
    max_chunks: int = 5
    over_fetch: int = 2
    max_context_chars: int = 4000
    min_truncate_chars: int = 200


@dataclass
class ChunkerCfg:
    """Sentence chunker sizes, in characters (recall.yaml: chunker:)."""

    chunk_size: int = 1000
    overlap: int = 200


@dataclass
class IngestCfg:
    """File intake limits and background processing (recall.yaml: ingest:).

    Attributes:
        max_file_size_mb: Uploads at or above this size are rejected.
        max_concurrent: Cap on concurrent background ingestions (0 = unbounded).
        replace_on_reprocess: Delete a file's existing chunks before reprocessing it.
    """

    max_file_size_mb: int = 10
    max_concurrent: int = 0
    replace_on_reprocess: bool = True


@dataclass
class StorageCfg:
    """Storage backend selection (recall.yaml: storage:)."""

    backend: str = "sqlite"  # sqlite | memory
    db_path: str = ".recall.db"
    blob_dir: str = ".recall-blobs"
    public_url_base: str = ""
    user_id: str = "local"


@dataclass
class ChatCfg:
    """Conversation settings (recall.yaml: chat:)."""

    history_limit: int = 10


@dataclass
class LoggingCfg:
    """Log sinks (recall.yaml: logging:). An empty *file* disables the file sink."""

    level: str = "INFO"
    file: str = ""


@dataclass
class RecallConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    chunker: ChunkerCfg = field(default_factory=ChunkerCfg)
    ingest: IngestCfg = field(default_factory=IngestCfg)
    storage: StorageCfg = field(default_factory=StorageCfg)
    chat: ChatCfg = field(default_factory=ChatCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: RecallConfig) -> None:
    if cfg.storage.backend not in _BACKENDS:
        raise ConfigError(
            f"storage.backend must be one of {sorted(_BACKENDS)}, got '{cfg.storage.backend}'"
        )
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.embedding.batch_size < 1:
        raise ConfigError(f"embedding.batch_size must be >= 1, got {cfg.embedding.batch_size}")
    if not -1.0 <= cfg.retrieval.similarity_threshold <= 1.0:
        raise ConfigError(
            "retrieval.similarity_threshold must be within [-1, 1], "
            f"got {cfg.retrieval.similarity_threshold}"
        )
    if cfg.retrieval.max_context_chars < 1:
        raise ConfigError(
            f"retrieval.max_context_chars must be >= 1, got {cfg.retrieval.max_context_chars}"
        )
    if cfg.retrieval.min_truncate_chars < 0:
        raise ConfigError(
            f"retrieval.min_truncate_chars must be >= 0, got {cfg.retrieval.min_truncate_chars}"
        )
    if cfg.chunker.overlap >= cfg.chunker.chunk_size:
        raise ConfigError("chunker.overlap must be smaller than chunker.chunk_size")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> RecallConfig:
    """Build a *RecallConfig* from a merged raw YAML dict."""
    cfg = RecallConfig()

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
            batch_pause=float(e.get("batch_pause", cfg.embedding.batch_pause)),
            max_component=float(e.get("max_component", cfg.embedding.max_component)),
        )

    if "generation" in data:
        g = data["generation"] or {}
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            temperature=float(g.get("temperature", cfg.generation.temperature)),
            max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        cfg.retrieval = RetrievalCfg(
            similarity_threshold=float(
                r.get("similarity_threshold", cfg.retrieval.similarity_threshold)
            ),
            max_chunks=int(r.get("max_chunks", cfg.retrieval.max_chunks)),
            over_fetch=int(r.get("over_fetch", cfg.retrieval.over_fetch)),
            max_context_chars=int(r.get("max_context_chars", cfg.retrieval.max_context_chars)),
            min_truncate_chars=int(
                r.get("min_truncate_chars", cfg.retrieval.min_truncate_chars)
            ),
        )

    if "chunker" in data:
        c = data["chunker"] or {}
        cfg.chunker = ChunkerCfg(
            chunk_size=int(c.get("chunk_size", cfg.chunker.chunk_size)),
            overlap=int(c.get("overlap", cfg.chunker.overlap)),
        )

    if "ingest" in data:
        i = data["ingest"] or {}
        cfg.ingest = IngestCfg(
            max_file_size_mb=int(i.get("max_file_size_mb", cfg.ingest.max_file_size_mb)),
            max_concurrent=int(i.get("max_concurrent", cfg.ingest.max_concurrent)),
            replace_on_reprocess=bool(
                i.get("replace_on_reprocess", cfg.ingest.replace_on_reprocess)
            ),
        )

    if "storage" in data:
        s = data["storage"] or {}
        cfg.storage = StorageCfg(
            backend=str(s.get("backend", cfg.storage.backend)),
            db_path=str(s.get("db_path", cfg.storage.db_path)),
            blob_dir=str(s.get("blob_dir", cfg.storage.blob_dir)),
            public_url_base=str(s.get("public_url_base", cfg.storage.public_url_base)),
            user_id=str(s.get("user_id", cfg.storage.user_id)),
        )

    if "chat" in data:
        ch = data["chat"] or {}
        cfg.chat = ChatCfg(history_limit=int(ch.get("history_limit", cfg.chat.history_limit)))

    if "logging" in data:
        lg = data["logging"] or {}
        cfg.logging = LoggingCfg(
            level=str(lg.get("level", cfg.logging.level)).upper(),
            file=str(lg.get("file", cfg.logging.file) or ""),
        )

    return cfg


def _apply_env_overrides(cfg: RecallConfig) -> RecallConfig:
    """Apply RECALL_* environment variable overrides."""
    if model := os.environ.get("RECALL_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("RECALL_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if level := os.environ.get("RECALL_LOG_LEVEL"):
        cfg.logging.level = level.upper()
    if db_path := os.environ.get("RECALL_DB_PATH"):
        cfg.storage.db_path = db_path
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> RecallConfig:
    """Load and return a merged *RecallConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *recall.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *RecallConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains API-key-like fields, or a
            value is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.recall/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).

    Args:
        global_config_path: Override path (for testing).

    Returns:
        Path to the global config file.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# Recall global configuration — defaults only.\n"
            "# NEVER store API keys here — use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: openai/text-embedding-3-small\n"
            "  dimensions: 1536\n"
            "\n"
            "generation:\n"
            "  model: openai/gpt-4o-mini\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
