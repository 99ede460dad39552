"""Dialectica settings.

One ``Settings`` object exists per process; ``Settings.load()`` builds it
lazily and hands the same object back afterwards.  ``update()`` edits it in
place and ``reload()`` throws it away and reads the YAML files again.

Files read from ``.metadata/``:

* ``email.yaml``         – OpenAlex polite-pool email
* ``llm_profiles.yaml``  – Gemini credentials
* ``pipeline.yaml``      – retry bound, corpus size, pricing, ...

Files missing from ``.metadata/`` are seeded from ``.metadata.example/``.

Environment variables win over the YAML files:
``GEMINI_API_KEY`` (or ``API_KEY``), ``SEMANTIC_SCHOLAR_API_KEY`` and
``DIALECTICA_HOME`` (base directory holding ``.metadata/``).
"""

import logging
import os
import shutil
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"


# ---------------------------------------------------------------------------
# Config dataclasses
# ---------------------------------------------------------------------------

@dataclass
class LLMProfile:
    """A single Gemini credential."""

    id: str
    name: str
    model: str
    api_key: str


@dataclass
class PipelineConfig:
    """Tunable constants of the retrieval-and-synthesis pipeline."""

    max_search_attempts: int = 3
    max_corpus_size: int = 100
    results_per_source: int = 50
    relevance_threshold: float = 3.0
    chars_per_token: float = 3.5
    input_price_per_million: float = 0.35
    output_price_per_million: float = 0.70

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PipelineConfig":
        """Build from a YAML mapping, ignoring unknown keys."""
        known = {f.name: f.type for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            if key not in known or value is None:
                continue
            caster = int if known[key] in (int, "int") else float
            kwargs[key] = caster(value)
        return cls(**kwargs)


# ---------------------------------------------------------------------------
# Singleton metaclass
# ---------------------------------------------------------------------------

class _SettingsMeta(type):
    """Caches the first instance of each class; constructor args are ignored afterwards."""

    _instances: dict[type, Any] = {}

    def __call__(cls, *args: Any, **kwargs: Any) -> Any:
        if cls not in cls._instances:
            cls._instances[cls] = super().__call__(*args, **kwargs)
        return cls._instances[cls]


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@dataclass
class Settings(metaclass=_SettingsMeta):
    """Application settings: singleton with runtime-mutable fields.

    Usage::

        settings = Settings.load()          # first call → create
        settings = Settings.load()          # later → same object
        settings.update(contact_email="me@example.org")
        settings = Settings.reload()        # re-read from disk
    """

    contact_email: Optional[str] = None
    metadata_dir: Path = Path(".metadata")
    export_dir: Path = Path("exports")

    # Gemini credentials
    llm_profiles: list[LLMProfile] = field(default_factory=list)
    active_llm_id: Optional[str] = None
    env_api_key: Optional[str] = None

    semantic_scholar_api_key: Optional[str] = None
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    # ── Computed properties ────────────────────────────────────────────

    @property
    def active_llm(self) -> Optional[LLMProfile]:
        """Profile named by ``active_llm_id``, if any."""
        if not self.active_llm_id:
            return None
        return next(
            (p for p in self.llm_profiles if p.id == self.active_llm_id),
            None,
        )

    @property
    def gemini_api_key(self) -> Optional[str]:
        """Environment key first, then the active profile's key."""
        if self.env_api_key:
            return self.env_api_key
        profile = self.active_llm
        return profile.api_key if profile else None

    @property
    def llm_model(self) -> str:
        profile = self.active_llm
        return profile.model if profile else DEFAULT_MODEL

    # ── Runtime helpers ───────────────────────────────────────────────

    def update(self, **kwargs: Any) -> None:
        """Set existing fields; unknown names raise AttributeError."""
        for key, value in kwargs.items():
            if not hasattr(self, key):
                raise AttributeError(f"Settings has no field '{key}'")
            setattr(self, key, value)

    def set_api_key(self, api_key: str, model: str = DEFAULT_MODEL) -> LLMProfile:
        """Store *api_key* as the active profile and persist it."""
        profile = LLMProfile(id="default", name="Gemini", model=model, api_key=api_key)
        self.llm_profiles = [p for p in self.llm_profiles if p.id != profile.id]
        self.llm_profiles.append(profile)
        self.active_llm_id = profile.id
        save_llm_profiles(
            self.metadata_dir / "llm_profiles.yaml",
            self.llm_profiles,
            self.active_llm_id,
        )
        return profile

    # ── Factory / lifecycle ───────────────────────────────────────────

    @classmethod
    def load(cls, base_dir: Optional[Path] = None) -> "Settings":
        """Return the process-wide settings, reading ``.metadata/`` the first time.

        *base_dir* is the directory holding ``.metadata/`` (defaults to ``$DIALECTICA_HOME`` or the repository root one
        level above ``dialectica/``).
        """
        if cls in _SettingsMeta._instances:
            return _SettingsMeta._instances[cls]  # type: ignore[return-value]

        if base_dir is None:
            env_home = os.environ.get("DIALECTICA_HOME")
            base_dir = (
                Path(env_home)
                if env_home
                else Path(__file__).resolve().parent.parent
            )

        metadata_dir = base_dir / ".metadata"
        cls._ensure_default_files(base_dir, metadata_dir)

        contact_email = _load_email(metadata_dir / "email.yaml")
        llm_profiles, active_llm_id = _load_llm_profiles(
            metadata_dir / "llm_profiles.yaml"
        )
        pipeline, s2_key = _load_pipeline_config(metadata_dir / "pipeline.yaml")

        return cls(
            contact_email=contact_email,
            metadata_dir=metadata_dir,
            export_dir=base_dir / "exports",
            llm_profiles=llm_profiles,
            active_llm_id=active_llm_id,
            env_api_key=os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY"),
            semantic_scholar_api_key=os.environ.get("SEMANTIC_SCHOLAR_API_KEY") or s2_key,
            pipeline=pipeline,
        )

    @classmethod
    def reload(cls, base_dir: Optional[Path] = None) -> "Settings":
        """Forget the cached settings and read them again."""
        cls.reset()
        return cls.load(base_dir)

    @classmethod
    def reset(cls) -> None:
        """Forget the cached settings without reading anything."""
        _SettingsMeta._instances.pop(cls, None)

    # ── Private ───────────────────────────────────────────────────────

    @staticmethod
    def _ensure_default_files(base_dir: Path, metadata_dir: Path) -> None:
        """Copy ``.metadata.example/`` templates when real files are missing."""
        metadata_dir.mkdir(parents=True, exist_ok=True)

        example_dir = base_dir / ".metadata.example"
        if not example_dir.exists():
            return

        for example_file in example_dir.iterdir():
            if example_file.is_file():
                target = metadata_dir / example_file.name
                if not target.exists():
                    shutil.copy2(example_file, target)
                    logger.info("Created .metadata/%s from template", example_file.name)


# ---------------------------------------------------------------------------
# YAML loaders
# ---------------------------------------------------------------------------

def _read_yaml(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def _load_email(path: Path) -> Optional[str]:
    """``contact_email`` from ``email.yaml``; blank means unset."""
    if not path.exists():
        return None
    try:
        data = _read_yaml(path)
    except yaml.YAMLError as e:
        logger.warning("Ignoring unreadable %s: %s", path, e)
        return None
    if isinstance(data, dict):
        email = data.get("contact_email")
        return email if email else None
    return None


def save_email(path: Path, email: Optional[str]) -> None:
    """Write the OpenAlex contact address back to ``email.yaml``."""
    with open(path, "w", encoding="utf-8") as f:
        f.write("# Email for the OpenAlex polite pool (recommended)\n")
        f.write("# e.g. you@example.com\n")
        yaml.dump(
            {"contact_email": email or ""},
            f,
            default_flow_style=False,
            allow_unicode=True,
        )


def _load_llm_profiles(path: Path) -> tuple[list[LLMProfile], Optional[str]]:
    """Parse ``llm_profiles.yaml`` into (profiles, active id); profiles without a key are skipped."""
    if not path.exists():
        return [], None
    try:
        data = _read_yaml(path)
    except yaml.YAMLError as e:
        logger.warning("Ignoring unreadable %s: %s", path, e)
        return [], None
    if not isinstance(data, dict):
        return [], None

    active_id = data.get("active") or None
    raw_profiles = data.get("profiles") or []
    profiles = []
    for p in raw_profiles:
        if isinstance(p, dict) and p.get("id") and p.get("api_key"):
            model = str(p.get("model") or DEFAULT_MODEL)
            profiles.append(
                LLMProfile(
                    id=str(p["id"]),
                    name=str(p.get("name", model)),
                    model=model,
                    api_key=str(p["api_key"]),
                )
            )
    return profiles, active_id


def save_llm_profiles(
    path: Path,
    profiles: list[LLMProfile],
    active_id: Optional[str] = None,
) -> None:
    """Persist Gemini profiles to ``llm_profiles.yaml``."""
    data: dict[str, Any] = {
        "active": active_id,
        "profiles": [
            {
                "id": p.id,
                "name": p.name,
                "model": p.model,
                "api_key": p.api_key,
            }
            for p in profiles
        ],
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write("# Gemini credentials\n")
        f.write("# active: id of the profile in use\n")
        f.write("# profiles: list of (id, name, model, api_key)\n\n")
        yaml.dump(
            data,
            f,
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False,
        )


def _load_pipeline_config(path: Path) -> tuple[PipelineConfig, Optional[str]]:
    """Load pipeline constants and the Semantic Scholar key from ``pipeline.yaml``."""
    if not path.exists():
        return PipelineConfig(), None
    try:
        data = _read_yaml(path)
        if not isinstance(data, dict):
            return PipelineConfig(), None
        s2_key = data.pop("semantic_scholar_api_key", None) or None
        return PipelineConfig.from_dict(data), s2_key
    except (yaml.YAMLError, TypeError, ValueError) as e:
        logger.warning("Ignoring invalid %s, using defaults: %s", path, e)
        return PipelineConfig(), None
