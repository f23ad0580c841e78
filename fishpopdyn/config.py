"""Configuration system for fishpopdyn.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → sweep overrides

Only scalar controls and short per-area vectors live here. Per-year
schedules (M, weight, maturity, selectivity, movement, closures) are
supplied to project_population() as arrays by the calling harness.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from fishpopdyn.recruitment import BevertonHolt, Ricker, StockRecruit
from fishpopdyn.types import ControlMode


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class ProjectionSection:
    """Projection length, structure, and control mode."""
    n_years: int = 50
    maxage: int = 20
    n_areas: int = 2
    plusgroup: bool = False
    control_mode: int = 1             # 1 effort, 2 apical F, 3 unfished reference
    closure_fallback: str = 'zero'    # 'zero' or 'raise' when no effort lands in open areas


@dataclass
class StockRecruitSection:
    """Stock-recruitment relationship and its per-area parameters."""
    relationship: str = 'beverton_holt'   # 'beverton_holt' or 'ricker'
    steepness: float = 0.7
    r0: List[float] = field(default_factory=lambda: [500.0, 500.0])
    ssbpr: List[float] = field(default_factory=lambda: [1.0, 1.0])
    alpha: Optional[List[float]] = None   # Ricker only
    beta: Optional[List[float]] = None    # Ricker only
    ssb0_total: Optional[float] = None    # Reference unfished SSB (unfished mode)


@dataclass
class FishingSection:
    """Fishing controls."""
    q: float = 0.0
    f_apical: float = 0.0
    spatial_targeting: float = 1.0
    max_f: float = 3.0


@dataclass
class SpatialSection:
    """Area geometry."""
    area_size: List[float] = field(default_factory=lambda: [1.0, 1.0])


@dataclass
class RecruitmentSection:
    """Recruitment deviation generation."""
    sigma: float = 0.0
    autocorrelation: float = 0.0
    bias_correct: bool = True
    seed: int = 42


@dataclass
class ProjectionConfig:
    """Complete projection configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level keys.
    """
    projection: ProjectionSection = field(default_factory=ProjectionSection)
    stock_recruit: StockRecruitSection = field(default_factory=StockRecruitSection)
    fishing: FishingSection = field(default_factory=FishingSection)
    spatial: SpatialSection = field(default_factory=SpatialSection)
    recruitment: RecruitmentSection = field(default_factory=RecruitmentSection)


_SECTION_MAP = {
    'projection': ProjectionSection,
    'stock_recruit': StockRecruitSection,
    'fishing': FishingSection,
    'spatial': SpatialSection,
    'recruitment': RecruitmentSection,
}


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def _yaml_to_config(data: Dict) -> ProjectionConfig:
    sections = {}
    for key, cls in _SECTION_MAP.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()
    return ProjectionConfig(**sections)


def config_to_dict(config: ProjectionConfig) -> Dict:
    """Plain-dict form of a config, suitable for yaml.safe_dump."""
    return dataclasses.asdict(config)


def _check_per_area(name: str, values, n_areas: int) -> None:
    if values is not None and len(values) != n_areas:
        raise ValueError(
            f"{name} must have {n_areas} values (one per area), got {len(values)}"
        )


def validate_config(config: ProjectionConfig) -> None:
    """Validate configuration constraints. Raises ValueError on failure."""
    p = config.projection
    if p.n_years < 1:
        raise ValueError(f"projection.n_years must be >= 1, got {p.n_years}")
    if p.maxage < 1:
        raise ValueError(f"projection.maxage must be >= 1, got {p.maxage}")
    if p.n_areas < 1:
        raise ValueError(f"projection.n_areas must be >= 1, got {p.n_areas}")
    valid_modes = {int(m) for m in ControlMode}
    if p.control_mode not in valid_modes:
        raise ValueError(
            f"projection.control_mode must be one of {sorted(valid_modes)}, "
            f"got {p.control_mode}"
        )
    valid_fallbacks = {'zero', 'raise'}
    if p.closure_fallback not in valid_fallbacks:
        raise ValueError(
            f"projection.closure_fallback must be one of {valid_fallbacks}, "
            f"got '{p.closure_fallback}'"
        )

    sr = config.stock_recruit
    valid_relationships = {'beverton_holt', 'ricker'}
    if sr.relationship not in valid_relationships:
        raise ValueError(
            f"stock_recruit.relationship must be one of {valid_relationships}, "
            f"got '{sr.relationship}'"
        )
    if sr.steepness <= 0.2:
        raise ValueError(f"stock_recruit.steepness must be > 0.2, got {sr.steepness}")
    if sr.relationship == 'beverton_holt' and sr.steepness > 1.0:
        raise ValueError(
            f"stock_recruit.steepness must be <= 1 for Beverton-Holt, "
            f"got {sr.steepness}"
        )
    _check_per_area('stock_recruit.r0', sr.r0, p.n_areas)
    _check_per_area('stock_recruit.ssbpr', sr.ssbpr, p.n_areas)
    _check_per_area('stock_recruit.alpha', sr.alpha, p.n_areas)
    _check_per_area('stock_recruit.beta', sr.beta, p.n_areas)
    if any(v < 0 for v in sr.r0):
        raise ValueError("stock_recruit.r0 must be >= 0")
    if any(v <= 0 for v in sr.ssbpr):
        raise ValueError("stock_recruit.ssbpr must be positive")
    if sr.relationship == 'ricker' and (sr.alpha is None or sr.beta is None):
        raise ValueError("stock_recruit.alpha and beta required for 'ricker'")
    if sr.alpha is not None and any(v < 0 for v in sr.alpha):
        raise ValueError("stock_recruit.alpha must be >= 0")
    if p.control_mode == ControlMode.UNFISHED:
        if sr.ssb0_total is None or sr.ssb0_total <= 0:
            raise ValueError(
                "stock_recruit.ssb0_total must be positive for the unfished "
                "reference mode (control_mode 3)"
            )

    f = config.fishing
    if f.q < 0:
        raise ValueError(f"fishing.q must be >= 0, got {f.q}")
    if f.f_apical < 0:
        raise ValueError(f"fishing.f_apical must be >= 0, got {f.f_apical}")
    if f.max_f < 0:
        raise ValueError(f"fishing.max_f must be >= 0, got {f.max_f}")

    _check_per_area('spatial.area_size', config.spatial.area_size, p.n_areas)
    if any(v <= 0 for v in config.spatial.area_size):
        raise ValueError("spatial.area_size must be positive")

    r = config.recruitment
    if r.sigma < 0:
        raise ValueError(f"recruitment.sigma must be >= 0, got {r.sigma}")
    if not -1 < r.autocorrelation < 1:
        raise ValueError(
            f"recruitment.autocorrelation must lie in (-1, 1), got {r.autocorrelation}"
        )
    if r.seed < 0:
        raise ValueError("recruitment.seed must be non-negative")


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    sweep_overrides: Optional[Dict] = None,
) -> ProjectionConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → sweep overrides.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ValueError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if scenario_path.exists():
            with open(scenario_path) as f:
                scenario = yaml.safe_load(f) or {}
            deep_merge(config_dict, scenario)

    if sweep_overrides is not None:
        deep_merge(config_dict, sweep_overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> ProjectionConfig:
    """Return a ProjectionConfig with all default values."""
    config = ProjectionConfig()
    validate_config(config)
    return config


# ═══════════════════════════════════════════════════════════════════════
# BUILDERS
# ═══════════════════════════════════════════════════════════════════════

def build_stock_recruit(config: ProjectionConfig) -> StockRecruit:
    """Stock-recruit relationship described by the config."""
    sr = config.stock_recruit
    if sr.relationship == 'ricker':
        return Ricker(alpha=sr.alpha, beta=sr.beta, ssbpr=sr.ssbpr)
    return BevertonHolt(r0=sr.r0, ssbpr=sr.ssbpr)
