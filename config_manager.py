"""
Configuration Management Module
Loads and validates vetting configuration from config.yaml
"""

import os
import yaml
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Dict, Any, Optional, List, Tuple

from profile_utils import clean_ein
from vetting_errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_NTEE: Tuple[str, ...] = (
    "A", "B", "C", "D", "E", "F", "G", "H", "I", "J",
    "K", "L", "M", "N", "O", "P", "R", "S", "U", "W",
)

DEFAULT_CORPORATE_SUFFIXES: Tuple[str, ...] = (
    "inc", "incorporated", "llc", "ltd", "limited", "corp", "corporation",
    "co", "company", "foundation", "plc", "lp", "llp", "pc", "nfp",
)

# Partial threshold overrides keyed by NTEE major category letter
DEFAULT_SECTOR_OVERRIDES: Dict[str, Dict[str, Any]] = {
    # Arts, Culture, and Humanities
    "A": {"red_flag_very_low_revenue": 15_000},
    # Health
    "E": {
        "revenue_pass_max": 50_000_000,
        "revenue_review_max": 100_000_000,
        "red_flag_high_comp_ratio": 0.5,
        "red_flag_moderate_comp_ratio": 0.35,
    },
    # Food, Agriculture, and Nutrition
    "K": {"revenue_fail_min": 10_000, "revenue_pass_min": 25_000, "red_flag_very_low_revenue": 8_000},
    # Housing, Shelter
    "L": {"revenue_fail_min": 15_000, "revenue_pass_min": 30_000, "red_flag_very_low_revenue": 10_000},
    # Youth Development
    "O": {"revenue_fail_min": 10_000, "revenue_pass_min": 25_000, "red_flag_very_low_revenue": 8_000},
    # Human Services
    "P": {"revenue_fail_min": 15_000, "revenue_pass_min": 30_000, "red_flag_very_low_revenue": 10_000},
    # Community Improvement, Capacity Building
    "S": {"revenue_fail_min": 10_000, "revenue_pass_min": 25_000, "red_flag_very_low_revenue": 8_000},
}

CACHE_MAX_AGE_MIN_DAYS = 1
CACHE_MAX_AGE_MAX_DAYS = 365


@dataclass(frozen=True)
class ThresholdConfig:
    """Scoring and red flag thresholds

    Passed explicitly into every engine; sector overrides produce a new
    instance via merged().
    """
    # Check weights, must sum to 100
    weight_years_operating: int = 10
    weight_revenue_range: int = 25
    weight_overhead_ratio: int = 35
    weight_recent_990: int = 30

    # Years operating
    years_pass_min: int = 3
    years_review_min: int = 1

    # Revenue range ($)
    revenue_fail_min: float = 25_000
    revenue_pass_min: float = 50_000
    revenue_pass_max: float = 10_000_000
    revenue_review_max: float = 50_000_000

    # Expense-to-revenue ratio
    expense_ratio_pass_min: float = 0.6
    expense_ratio_pass_max: float = 1.3
    expense_ratio_high_review: float = 1.5
    expense_ratio_low_review: float = 0.4

    # 990 filing recency (years)
    filing_pass_max_years: int = 3
    filing_review_max_years: int = 4

    # Score cutoffs
    score_pass_min: int = 75
    score_review_min: int = 50

    # Red flags
    red_flag_stale_filing_years: int = 4
    red_flag_high_expense_ratio: float = 1.5
    red_flag_low_expense_ratio: float = 0.4
    red_flag_very_low_revenue: float = 25_000
    red_flag_revenue_decline_pct: float = 0.2
    red_flag_too_new_years: int = 1
    red_flag_high_comp_ratio: float = 0.4
    red_flag_moderate_comp_ratio: float = 0.25
    revenue_decline_max_gap_months: int = 18

    @property
    def weights(self) -> Dict[str, int]:
        return {
            'years_operating': self.weight_years_operating,
            'revenue_range': self.weight_revenue_range,
            'overhead_ratio': self.weight_overhead_ratio,
            'recent_990': self.weight_recent_990,
        }

    def validation_errors(self) -> List[str]:
        """Return every violated threshold invariant"""
        errors: List[str] = []

        weights = list(self.weights.values())
        if any(w < 0 for w in weights):
            errors.append("All weights must be non-negative")
        if sum(weights) != 100:
            errors.append(f"Weights must sum to 100, got {sum(weights)}")

        if self.revenue_fail_min > self.revenue_pass_min:
            errors.append("revenue_fail_min must be <= revenue_pass_min")
        if self.revenue_pass_min > self.revenue_pass_max:
            errors.append("revenue_pass_min must be <= revenue_pass_max")
        if self.revenue_pass_max > self.revenue_review_max:
            errors.append("revenue_pass_max must be <= revenue_review_max")

        if self.expense_ratio_low_review > self.expense_ratio_pass_min:
            errors.append("expense_ratio_low_review must be <= expense_ratio_pass_min")
        if self.expense_ratio_pass_min > self.expense_ratio_pass_max:
            errors.append("expense_ratio_pass_min must be <= expense_ratio_pass_max")
        if self.expense_ratio_pass_max > self.expense_ratio_high_review:
            errors.append("expense_ratio_pass_max must be <= expense_ratio_high_review")

        if self.years_review_min > self.years_pass_min:
            errors.append("years_review_min must be <= years_pass_min")
        if self.filing_pass_max_years > self.filing_review_max_years:
            errors.append("filing_pass_max_years must be <= filing_review_max_years")
        if self.score_review_min > self.score_pass_min:
            errors.append("score_review_min must be <= score_pass_min")
        for name in ('score_pass_min', 'score_review_min'):
            if not 0 <= getattr(self, name) <= 100:
                errors.append(f"{name} must be between 0 and 100")

        for name in ('revenue_fail_min', 'revenue_review_max', 'years_review_min', 'years_pass_min',
                     'filing_pass_max_years', 'filing_review_max_years', 'red_flag_too_new_years',
                     'red_flag_stale_filing_years', 'revenue_decline_max_gap_months'):
            if getattr(self, name) < 0:
                errors.append(f"{name} must be non-negative")

        for name in ('red_flag_revenue_decline_pct', 'red_flag_moderate_comp_ratio', 'red_flag_high_comp_ratio'):
            if not 0 <= getattr(self, name) <= 1:
                errors.append(f"{name} must be between 0 and 1")
        if self.red_flag_moderate_comp_ratio > self.red_flag_high_comp_ratio:
            errors.append("red_flag_moderate_comp_ratio must be <= red_flag_high_comp_ratio")

        return errors

    def validate(self) -> 'ThresholdConfig':
        """Raise ConfigurationError listing every violation; return self when valid"""
        errors = self.validation_errors()
        if errors:
            raise ConfigurationError(
                "Invalid vetting thresholds:\n  - " + "\n  - ".join(errors),
                field="thresholds",
            )
        return self

    def merged(self, overrides: Optional[Dict[str, Any]]) -> 'ThresholdConfig':
        """Return a copy with the given fields replaced"""
        if not overrides:
            return self
        unknown = set(overrides) - threshold_field_names()
        if unknown:
            raise ConfigurationError(
                f"Unknown threshold fields: {', '.join(sorted(unknown))}",
                field="thresholds",
            )
        return replace(self, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def threshold_field_names() -> set:
    return {f.name for f in fields(ThresholdConfig)}


@dataclass(frozen=True)
class PortfolioFitConfig:
    """Portfolio fit gate policy"""
    enabled: bool = True
    allowed_ntee_categories: Tuple[str, ...] = DEFAULT_ALLOWED_NTEE
    excluded_eins: Tuple[str, ...] = ()
    included_eins: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MatchingConfig:
    """Name matching parameters"""
    fuzzy_threshold: float = 0.85
    public_charity_subsection: str = "03"
    corporate_suffixes: Tuple[str, ...] = DEFAULT_CORPORATE_SUFFIXES


@dataclass(frozen=True)
class PolicyConfig:
    """Recommendation policy switches"""
    reject_on_high_flags: bool = False


@dataclass
class CacheConfig:
    """Result cache configuration"""
    enabled: bool = True
    max_age_days: int = 30
    vetted_by: str = "vetting-engine"


@dataclass
class DatabaseConfig:
    """Database configuration"""
    url: str = "sqlite:///data/vetting.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    file: str = "logs/vetting.log"
    console: bool = True
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    audit_file: str = "logs/vetting_audit.log"


@dataclass
class PerformanceConfig:
    """Performance configuration"""
    max_threads: int = 4
    batch_size: int = 100


@dataclass
class AlgorithmConfig:
    """Algorithm version information"""
    version: str = "1.0.0"
    name: str = "Gate-Score-Flag Vetting Engine"
    last_updated: str = "2026-01-01"


def _parse_ein_list(raw: Any) -> Tuple[str, ...]:
    """Accept a YAML list or a comma-separated string of EINs"""
    if not raw:
        return ()
    items = raw.split(',') if isinstance(raw, str) else raw
    return tuple(e for e in (clean_ein(item) for item in items) if e)


class ConfigManager:
    """Manages vetting configuration"""

    _instance: Optional['ConfigManager'] = None

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager

        Args:
            config_path: Path to config.yaml file
        """
        if config_path is None:
            config_path = os.environ.get('VETTING_CONFIG')
        self.config_path = Path(config_path) if config_path else self._find_config()
        self._raw_config: Dict[str, Any] = {}
        self.thresholds: ThresholdConfig = ThresholdConfig()
        self.sector_overrides: Dict[str, Dict[str, Any]] = {
            k: dict(v) for k, v in DEFAULT_SECTOR_OVERRIDES.items()
        }
        self.portfolio_fit: PortfolioFitConfig = PortfolioFitConfig()
        self.matching: MatchingConfig = MatchingConfig()
        self.policy: PolicyConfig = PolicyConfig()
        self.cache: CacheConfig = CacheConfig()
        self.database: DatabaseConfig = DatabaseConfig()
        self.logging: LoggingConfig = LoggingConfig()
        self.performance: PerformanceConfig = PerformanceConfig()
        self.algorithm: AlgorithmConfig = AlgorithmConfig()

        if self.config_path and self.config_path.exists():
            self.load()
        else:
            logger.warning(f"Config file not found at {self.config_path}, using defaults")
            self._apply_env_overrides()
            self._validate()

    def _find_config(self) -> Path:
        """Find config.yaml in common locations"""
        search_paths = [
            Path(__file__).parent / "config.yaml",
            Path.cwd() / "config.yaml",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return search_paths[0]

    def load(self) -> None:
        """Load configuration from YAML file"""
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")
        except FileNotFoundError:
            raise ConfigurationError(f"Config file not found: {self.config_path}")

        if not isinstance(self._raw_config, dict):
            raise ConfigurationError("Config file must contain a mapping at the top level")

        self._parse_thresholds()
        self._parse_sector_overrides()
        self._parse_portfolio_fit()
        self._parse_matching()
        self._parse_policy()
        self._parse_cache()
        self._parse_database()
        self._parse_logging()
        self._parse_performance()
        self._parse_algorithm()
        self._apply_env_overrides()
        self._validate()

    def _section(self, name: str) -> Dict[str, Any]:
        cfg = self._raw_config.get(name) or {}
        if not isinstance(cfg, dict):
            raise ConfigurationError(f"Section '{name}' must be a mapping", field=name)
        return cfg

    def _parse_thresholds(self) -> None:
        """Parse scoring and red flag thresholds"""
        cfg = self._section('thresholds')
        self.thresholds = ThresholdConfig().merged(cfg)

    def _parse_sector_overrides(self) -> None:
        """Parse sector overrides; entries replace the defaults per NTEE letter"""
        cfg = self._section('sector_overrides')
        for letter, overrides in cfg.items():
            key = str(letter).strip().upper()
            if not overrides:
                self.sector_overrides.pop(key, None)
                continue
            if not isinstance(overrides, dict):
                raise ConfigurationError(
                    f"Sector override for '{key}' must be a mapping",
                    field=f"sector_overrides.{key}",
                )
            self.sector_overrides[key] = dict(overrides)

    def _parse_portfolio_fit(self) -> None:
        """Parse portfolio fit gate configuration"""
        cfg = self._section('portfolio_fit')
        allowed = cfg.get('allowed_ntee_categories')
        if isinstance(allowed, str):
            allowed = allowed.split(',')
        self.portfolio_fit = PortfolioFitConfig(
            enabled=bool(cfg.get('enabled', True)),
            allowed_ntee_categories=(
                tuple(str(c).strip().upper() for c in allowed if str(c).strip())
                if allowed is not None else DEFAULT_ALLOWED_NTEE
            ),
            excluded_eins=_parse_ein_list(cfg.get('excluded_eins')),
            included_eins=_parse_ein_list(cfg.get('included_eins')),
        )

    def _parse_matching(self) -> None:
        """Parse matching configuration"""
        cfg = self._section('matching')
        suffixes = cfg.get('corporate_suffixes')
        self.matching = MatchingConfig(
            fuzzy_threshold=float(cfg.get('fuzzy_threshold', 0.85)),
            public_charity_subsection=str(cfg.get('public_charity_subsection', '03')).zfill(2),
            corporate_suffixes=(
                tuple(str(s).strip().lower() for s in suffixes) if suffixes is not None
                else DEFAULT_CORPORATE_SUFFIXES
            ),
        )

    def _parse_policy(self) -> None:
        """Parse recommendation policy"""
        cfg = self._section('policy')
        self.policy = PolicyConfig(reject_on_high_flags=bool(cfg.get('reject_on_high_flags', False)))

    def _parse_cache(self) -> None:
        """Parse result cache configuration"""
        cfg = self._section('cache')
        self.cache = CacheConfig(
            enabled=bool(cfg.get('enabled', True)),
            max_age_days=cfg.get('max_age_days', 30),
            vetted_by=cfg.get('vetted_by', 'vetting-engine'),
        )

    def _parse_database(self) -> None:
        """Parse database configuration"""
        cfg = self._section('database')
        self.database = DatabaseConfig(
            url=cfg.get('url', self.database.url),
            echo=bool(cfg.get('echo', False)),
            pool_size=cfg.get('pool_size', 5),
            max_overflow=cfg.get('max_overflow', 10),
            pool_timeout=cfg.get('pool_timeout', 30),
            pool_recycle=cfg.get('pool_recycle', 1800),
        )

    def _parse_logging(self) -> None:
        """Parse logging configuration"""
        cfg = self._section('logging')
        self.logging = LoggingConfig(
            level=cfg.get('level', 'INFO'),
            file=cfg.get('file', 'logs/vetting.log'),
            console=cfg.get('console', True),
            format=cfg.get('format', self.logging.format),
            audit_file=cfg.get('audit_file', 'logs/vetting_audit.log'),
        )

    def _parse_performance(self) -> None:
        """Parse performance configuration"""
        cfg = self._section('performance')
        self.performance = PerformanceConfig(
            max_threads=cfg.get('max_threads', 4),
            batch_size=cfg.get('batch_size', 100),
        )

    def _parse_algorithm(self) -> None:
        """Parse algorithm configuration"""
        cfg = self._section('algorithm')
        self.algorithm = AlgorithmConfig(
            version=str(cfg.get('version', '1.0.0')),
            name=cfg.get('name', 'Gate-Score-Flag Vetting Engine'),
            last_updated=str(cfg.get('last_updated', '2026-01-01')),
        )

    def _apply_env_overrides(self) -> None:
        """Environment variables win over the file for deployment-specific values"""
        db_url = os.environ.get('DATABASE_URL')
        if db_url:
            self.database.url = db_url

        max_age = os.environ.get('VETTING_CACHE_MAX_AGE_DAYS')
        if max_age and max_age.strip().isdigit():
            self.cache.max_age_days = int(max_age)

        # Clamp rather than reject: a stale cache window is never fatal
        clamped = min(CACHE_MAX_AGE_MAX_DAYS, max(CACHE_MAX_AGE_MIN_DAYS, int(self.cache.max_age_days)))
        if clamped != self.cache.max_age_days:
            logger.warning(f"cache.max_age_days={self.cache.max_age_days} out of range, using {clamped}")
            self.cache.max_age_days = clamped

    def resolve_sector_thresholds(self, ntee_code: Optional[str]) -> ThresholdConfig:
        """Thresholds for an organization's NTEE sector"""
        # Imported here: scoring_engine depends on this module
        from scoring_engine import resolve_thresholds
        return resolve_thresholds(self.thresholds, ntee_code, self.sector_overrides)

    @classmethod
    def get_instance(cls, config_path: Optional[str] = None) -> 'ConfigManager':
        """Get singleton instance of ConfigManager"""
        if cls._instance is None:
            cls._instance = ConfigManager(config_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton instance (useful for testing)"""
        cls._instance = None

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary"""
        return {
            'thresholds': self.thresholds.to_dict(),
            'sector_overrides': {k: dict(v) for k, v in self.sector_overrides.items()},
            'portfolio_fit': {
                'enabled': self.portfolio_fit.enabled,
                'allowed_ntee_categories': list(self.portfolio_fit.allowed_ntee_categories),
                'excluded_eins': list(self.portfolio_fit.excluded_eins),
                'included_eins': list(self.portfolio_fit.included_eins),
            },
            'matching': {
                'fuzzy_threshold': self.matching.fuzzy_threshold,
                'public_charity_subsection': self.matching.public_charity_subsection,
                'corporate_suffixes': list(self.matching.corporate_suffixes),
            },
            'policy': {'reject_on_high_flags': self.policy.reject_on_high_flags},
            'cache': {
                'enabled': self.cache.enabled,
                'max_age_days': self.cache.max_age_days,
                'vetted_by': self.cache.vetted_by,
            },
            'database': {'url': self.database.url, 'echo': self.database.echo},
            'performance': {
                'max_threads': self.performance.max_threads,
                'batch_size': self.performance.batch_size,
            },
            'algorithm': {
                'version': self.algorithm.version,
                'name': self.algorithm.name,
                'last_updated': self.algorithm.last_updated,
            },
        }

    def _validate(self) -> None:
        """Validate configuration values, reporting every violation at once"""
        errors = list(self.thresholds.validation_errors())

        known = threshold_field_names()
        for letter, overrides in sorted(self.sector_overrides.items()):
            unknown = set(overrides) - known
            if unknown:
                errors.append(f"sector_overrides.{letter}: unknown fields {', '.join(sorted(unknown))}")
                continue
            for message in self.thresholds.merged(overrides).validation_errors():
                errors.append(f"sector_overrides.{letter}: {message}")

        if not 0 <= self.matching.fuzzy_threshold < 1:
            errors.append("matching.fuzzy_threshold must be in [0, 1)")
        if self.performance.max_threads < 1:
            errors.append("performance.max_threads must be >= 1")
        if self.performance.batch_size < 1:
            errors.append("performance.batch_size must be >= 1")

        if errors:
            raise ConfigurationError(
                "Invalid configuration:\n  - " + "\n  - ".join(errors),
                field="config",
            )


def get_config(config_path: Optional[str] = None) -> ConfigManager:
    """Convenience function to get configuration instance"""
    return ConfigManager.get_instance(config_path)
