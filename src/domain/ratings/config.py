"""Load rating-engine definitions from TOML files."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import tomllib
from typing import Any

from domain.ratings.glicko2.calculator import Glicko2Parameters
from domain.ratings.protocol import TimeoutPolicy

ROOT_DIR = Path(__file__).resolve().parents[3]
DEFAULT_CONFIG_DIR = ROOT_DIR / "configs" / "ratings"
LEADERBOARD_BACKENDS = ("memory", "redis")


@dataclass(frozen=True)
class RankingParameters:
    ranked_rd_threshold: float = 100.0
    timeout_policy: TimeoutPolicy = TimeoutPolicy.SUBJECT_LOSES
    max_update_retries: int = 3


@dataclass(frozen=True)
class LeaderboardSettings:
    backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "ratings:leaderboard"


@dataclass(frozen=True)
class RatingEngineConfig:
    """Configuration for one rating engine process."""

    name: str
    description: str | None
    file_path: Path
    lookback_days: int
    parameters: Glicko2Parameters
    ranking: RankingParameters
    leaderboard: LeaderboardSettings

    def as_config_json(self) -> dict[str, Any]:
        return {
            "initial_rating": self.parameters.initial_rating,
            "initial_rd": self.parameters.initial_rd,
            "initial_volatility": self.parameters.initial_volatility,
            "tau": self.parameters.tau,
            "min_rd": self.parameters.min_rd,
            "max_rd": self.parameters.max_rd,
            "epsilon": self.parameters.epsilon,
            "max_iterations": self.parameters.max_iterations,
            "ranked_rd_threshold": self.ranking.ranked_rd_threshold,
            "timeout_policy": self.ranking.timeout_policy.value,
            "max_update_retries": self.ranking.max_update_retries,
            "leaderboard_backend": self.leaderboard.backend,
            "lookback_days": self.lookback_days,
        }


def load_rating_configs(config_dir: Path = DEFAULT_CONFIG_DIR) -> list[RatingEngineConfig]:
    """Load and validate all rating-engine TOML files in a directory."""
    if not config_dir.is_dir():
        raise FileNotFoundError(f"Config directory not found: {config_dir}")

    config_files = sorted(config_dir.glob("*.toml"))
    if not config_files:
        raise ValueError(f"No .toml config files found in: {config_dir}")

    configs = [_parse_config(_read_toml(file_path), file_path) for file_path in config_files]
    names = [config.name for config in configs]
    if len(names) != len(set(names)):
        raise ValueError(f"Duplicate rating engine names found in {config_dir}: {names}")
    return configs


def load_rating_config(file_path: Path) -> RatingEngineConfig:
    """Load and validate a single rating-engine TOML file."""
    if not file_path.is_file():
        raise FileNotFoundError(f"Config file not found: {file_path}")
    return _parse_config(_read_toml(file_path), file_path)


def _read_toml(file_path: Path) -> dict[str, Any]:
    with file_path.open("rb") as file:
        return tomllib.load(file)


def _parse_config(raw: dict[str, Any], file_path: Path) -> RatingEngineConfig:
    system_raw = raw.get("system", {})
    glicko2_raw = raw.get("glicko2", {})
    ranking_raw = raw.get("ranking", {})
    leaderboard_raw = raw.get("leaderboard", {})

    name = str(system_raw.get("name", "")).strip()
    if not name:
        raise ValueError(f"{file_path}: [system].name is required")

    description_value = system_raw.get("description")
    description = None if description_value is None else str(description_value)

    lookback_days = int(system_raw.get("lookback_days", 0))
    if lookback_days < 0:
        raise ValueError(f"{file_path}: [system].lookback_days must be >= 0")

    parameters = Glicko2Parameters(
        initial_rating=float(glicko2_raw.get("initial_rating", 1500.0)),
        initial_rd=float(glicko2_raw.get("initial_rd", 350.0)),
        initial_volatility=float(glicko2_raw.get("initial_volatility", 0.06)),
        tau=float(glicko2_raw.get("tau", 0.5)),
        min_rd=float(glicko2_raw.get("min_rd", 30.0)),
        max_rd=float(glicko2_raw.get("max_rd", 350.0)),
        epsilon=float(glicko2_raw.get("epsilon", 1e-6)),
        max_iterations=int(glicko2_raw.get("max_iterations", 100)),
    )
    _validate_parameters(file_path=file_path, parameters=parameters)

    timeout_value = str(ranking_raw.get("timeout_policy", TimeoutPolicy.SUBJECT_LOSES.value))
    try:
        timeout_policy = TimeoutPolicy(timeout_value)
    except ValueError as exc:
        allowed = ", ".join(policy.value for policy in TimeoutPolicy)
        raise ValueError(f"{file_path}: [ranking].timeout_policy must be one of: {allowed}") from exc

    ranking = RankingParameters(
        ranked_rd_threshold=float(ranking_raw.get("ranked_rd_threshold", 100.0)),
        timeout_policy=timeout_policy,
        max_update_retries=int(ranking_raw.get("max_update_retries", 3)),
    )
    if ranking.ranked_rd_threshold <= 0.0:
        raise ValueError(f"{file_path}: [ranking].ranked_rd_threshold must be > 0")
    if ranking.max_update_retries < 1:
        raise ValueError(f"{file_path}: [ranking].max_update_retries must be >= 1")

    leaderboard = LeaderboardSettings(
        backend=str(leaderboard_raw.get("backend", "memory")),
        redis_url=str(leaderboard_raw.get("redis_url", "redis://localhost:6379/0")),
        key_prefix=str(leaderboard_raw.get("key_prefix", "ratings:leaderboard")),
    )
    if leaderboard.backend not in LEADERBOARD_BACKENDS:
        raise ValueError(
            f"{file_path}: [leaderboard].backend must be one of: {', '.join(LEADERBOARD_BACKENDS)}"
        )

    return RatingEngineConfig(
        file_path=file_path,
        name=name,
        description=description,
        lookback_days=lookback_days,
        parameters=parameters,
        ranking=ranking,
        leaderboard=leaderboard,
    )


def _validate_parameters(*, file_path: Path, parameters: Glicko2Parameters) -> None:
    if parameters.initial_rating <= 0.0:
        raise ValueError(f"{file_path}: [glicko2].initial_rating must be > 0")
    if parameters.initial_rd <= 0.0:
        raise ValueError(f"{file_path}: [glicko2].initial_rd must be > 0")
    if parameters.initial_volatility <= 0.0:
        raise ValueError(f"{file_path}: [glicko2].initial_volatility must be > 0")
    if parameters.tau <= 0.0:
        raise ValueError(f"{file_path}: [glicko2].tau must be > 0")
    if parameters.min_rd <= 0.0:
        raise ValueError(f"{file_path}: [glicko2].min_rd must be > 0")
    if parameters.max_rd <= 0.0:
        raise ValueError(f"{file_path}: [glicko2].max_rd must be > 0")
    if parameters.min_rd > parameters.max_rd:
        raise ValueError(f"{file_path}: [glicko2].min_rd must be <= max_rd")
    if parameters.initial_rd < parameters.min_rd or parameters.initial_rd > parameters.max_rd:
        raise ValueError(f"{file_path}: [glicko2].initial_rd must be between min_rd and max_rd")
    if parameters.epsilon <= 0.0:
        raise ValueError(f"{file_path}: [glicko2].epsilon must be > 0")
    if parameters.max_iterations < 1:
        raise ValueError(f"{file_path}: [glicko2].max_iterations must be >= 1")


__all__ = [
    "DEFAULT_CONFIG_DIR",
    "LeaderboardSettings",
    "RankingParameters",
    "RatingEngineConfig",
    "load_rating_config",
    "load_rating_configs",
]
