from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

load_dotenv()

DEFAULTS_PATH = Path(__file__).resolve().parent / "config" / "defaults.yaml"
CONFIG_FILE_ENV = "PDF_JOBS_CONFIG"
ENV_PREFIX = "PDF_JOBS__"


@lru_cache(maxsize=1)
def _load_default_config() -> DictConfig:
    if not DEFAULTS_PATH.exists():
        raise FileNotFoundError(f"Default config not found at {DEFAULTS_PATH}")
    return OmegaConf.load(DEFAULTS_PATH)


def get_default_config_container(resolve: bool = False) -> Dict[str, Any]:
    config = _load_default_config()
    return OmegaConf.to_container(config, resolve=resolve, enum_to_str=True)  # type: ignore[return-value]


def env_dotlist(environ: Mapping[str, str]) -> List[str]:
    """
    Translate prefixed environment variables into OmegaConf dotlist entries.

    Example:
        >>> env_dotlist({"PDF_JOBS__EXECUTION__MAX_WORKERS": "4"})
        ["execution.max_workers=4"]
    """
    entries = []
    for name, value in sorted(environ.items()):
        if not name.startswith(ENV_PREFIX):
            continue
        key = ".".join(part.lower() for part in name[len(ENV_PREFIX):].split("__") if part)
        if key:
            entries.append(f"{key}={value}")
    return entries


def load_settings(
    overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> DictConfig:
    """
    Build the runtime settings by layering overrides onto the packaged defaults.

    Layers, lowest precedence first: packaged defaults, the YAML file named by
    ``PDF_JOBS_CONFIG``, ``PDF_JOBS__*`` environment variables, ``overrides``.
    The base is in struct mode, so a misspelt key fails instead of being
    silently ignored.
    """
    environ = os.environ if environ is None else environ

    base_container = OmegaConf.to_container(_load_default_config(), resolve=False)
    base = OmegaConf.create(base_container)
    OmegaConf.set_struct(base, True)

    layers = [base]
    config_file = environ.get(CONFIG_FILE_ENV)
    if config_file:
        layers.append(OmegaConf.load(config_file))
    dotlist = env_dotlist(environ)
    if dotlist:
        layers.append(OmegaConf.from_dotlist(dotlist))
    if overrides:
        layers.append(OmegaConf.create(overrides))

    return OmegaConf.merge(*layers)  # type: ignore[return-value]
