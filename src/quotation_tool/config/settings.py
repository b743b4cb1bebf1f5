"""
Centralized settings and path configuration for the quotation tool.
"""
import logging
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    # Walk up from this file to find the project root
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 3 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass
class Settings:
    """
    Application settings with sensible defaults.

    ``tax_rate`` is a percentage applied to the quotation total. It defaults
    to 0 so quotations carry no tax line; the earlier price sheet used 6, set
    QUOTATION_TOOL_TAX_RATE=6 to match it.
    """

    # Project paths
    project_root: Path
    data_dir: Path

    # Seed price list imported on first run
    seed_catalog: Path

    # JSON record store (one file per table)
    store_dir: Path

    # Fallbacks for blank cost drivers
    default_forex_rate: float = 1.0
    default_tax_multiplier: float = 1.0
    default_operational_adjustment: float = 0.97

    # Quotation figures
    tax_rate: float = 0.0
    currency_symbol: str = 'RM'

    # First version of a project is "<prefix>-1"
    version_name_prefix: str = 'version'

    log_level: str = 'INFO'

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure and environment."""
        root = project_root or get_project_root()
        data_dir = root / 'data'

        store_override = os.environ.get('QUOTATION_TOOL_STORE_DIR')
        store_dir = Path(store_override) if store_override else data_dir / 'store'

        return cls(
            project_root=root,
            data_dir=data_dir,
            seed_catalog=data_dir / 'master_catalog.csv',
            store_dir=store_dir,
            tax_rate=_env_float('QUOTATION_TOOL_TAX_RATE', 0.0),
            log_level=os.environ.get('QUOTATION_TOOL_LOG_LEVEL', 'INFO').upper(),
        )


_logging_configured = False


def configure_logging(level: Optional[str] = None):
    """Install a basic stream handler for the package loggers (once)."""
    global _logging_configured
    if _logging_configured:
        return
    logging.basicConfig(
        level=getattr(logging, (level or get_settings().log_level), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    _logging_configured = True


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
