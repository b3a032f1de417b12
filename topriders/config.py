"""Widget configuration with environment overrides."""

import os
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from . import constants as C
from .models import Category, SheetTab
from .sheets import default_tabs


def _env_int(name: str, default: int) -> int:
    val = os.environ.get(name)
    if val is None or val.strip() == "":
        return default
    try:
        return int(val)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    val = os.environ.get(name)
    if val is None or val.strip() == "":
        return default
    return str(val).strip().lower() not in ("0", "false", "no", "off")


@dataclass(frozen=True)
class WidgetConfig:
    sheet_url: str = ""
    refresh_interval_ms: int = C.DEFAULT_REFRESH_INTERVAL_MS
    cache_enabled: bool = True
    cache_expiry_ms: int = C.DEFAULT_CACHE_EXPIRY_MS
    top_ml: int = C.DEFAULT_TOP_ML_COUNT
    top_dl: int = C.DEFAULT_TOP_DL_COUNT
    top_prime1: int = C.DEFAULT_TOP_PRIME_COUNT
    top_prime2: int = C.DEFAULT_TOP_PRIME_COUNT
    timeout_ms: int = C.DEFAULT_REQUEST_TIMEOUT_MS
    debounce_ms: int = C.DEFAULT_DEBOUNCE_MS
    sweep_interval_ms: int = C.DEFAULT_SWEEP_INTERVAL_MS
    container_selector: str = C.DEFAULT_CONTAINER_SELECTOR
    tabs: List[SheetTab] = field(default_factory=default_tabs)

    def limits(self) -> Dict[Category, int]:
        return {
            Category.MAIN_LEAGUE: self.top_ml,
            Category.DEVELOPMENT_LEAGUE: self.top_dl,
            Category.PRIME_1: self.top_prime1,
            Category.PRIME_2: self.top_prime2,
        }

    def updated(self, **changes) -> "WidgetConfig":
        return replace(self, **changes)

    @classmethod
    def from_env(cls, sheet_url: Optional[str] = None) -> "WidgetConfig":
        top_prime = _env_int("TOPRIDERS_TOP_PRIME", C.DEFAULT_TOP_PRIME_COUNT)
        return cls(
            sheet_url=sheet_url if sheet_url is not None else os.environ.get("TOPRIDERS_SHEET_URL", ""),
            refresh_interval_ms=_env_int("TOPRIDERS_REFRESH_INTERVAL_MS", C.DEFAULT_REFRESH_INTERVAL_MS),
            cache_enabled=_env_bool("TOPRIDERS_CACHE_ENABLED", True),
            cache_expiry_ms=_env_int("TOPRIDERS_CACHE_EXPIRY_MS", C.DEFAULT_CACHE_EXPIRY_MS),
            top_ml=_env_int("TOPRIDERS_TOP_ML", C.DEFAULT_TOP_ML_COUNT),
            top_dl=_env_int("TOPRIDERS_TOP_DL", C.DEFAULT_TOP_DL_COUNT),
            top_prime1=top_prime,
            top_prime2=top_prime,
            timeout_ms=_env_int("TOPRIDERS_TIMEOUT_MS", C.DEFAULT_REQUEST_TIMEOUT_MS),
            container_selector=os.environ.get("TOPRIDERS_CONTAINER", C.DEFAULT_CONTAINER_SELECTOR),
        )
