import json
import math
import re
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.errors import ConfigurationError
from utils.schemas import ExclusionCategory

# Repository root (where .env and config/ live)
PROJECT_DIR = Path(__file__).resolve().parent.parent

_CODE_PATTERN = re.compile(r"^[A-Za-z0-9.]+$")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CAREGAP_",
        env_file=str(PROJECT_DIR / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # Input / output locations
    DATA_DIR: str = "data/patients"
    OUTPUT_DIR: str = "output"

    # Guideline rule table (thresholds, code families)
    RULES_FILE: str = str(PROJECT_DIR / "config" / "statin_rules.json")

    # Defaults to today when unset
    REFERENCE_DATE: Optional[date] = None

    NOTE_SCANNING_ENABLED: bool = False
    SHARD_COUNT: int = 1


def _clean_codes(values: List[str]) -> List[str]:
    cleaned = []
    for value in values:
        code = str(value).strip().upper()
        if not _CODE_PATTERN.match(code):
            raise ValueError(f"invalid ICD code pattern: {value!r}")
        if code not in cleaned:
            cleaned.append(code)
    return cleaned


class ExclusionRuleSet(BaseModel):
    category: ExclusionCategory
    reason_text: str
    exact_codes: List[str] = []
    code_prefixes: List[str] = []

    @field_validator("exact_codes", "code_prefixes")
    @classmethod
    def _validate_codes(cls, v: List[str]) -> List[str]:
        return _clean_codes(v)

    @model_validator(mode="after")
    def _has_codes(self):
        if not self.exact_codes and not self.code_prefixes:
            raise ValueError(f"rule set {self.category.value} matches no codes")
        if not self.reason_text.strip():
            raise ValueError(f"rule set {self.category.value} has an empty reason_text")
        return self

    def matches(self, code: str) -> bool:
        code = code.upper()
        return code in self.exact_codes or any(code.startswith(p) for p in self.code_prefixes)


class NoteScanConfig(BaseModel):
    reason_text: str = "Intolerance noted in clinical notes"
    phrases: List[str] = []
    # Each entry is a sequence of parts that must appear in order within one note
    ordered_patterns: List[List[str]] = []

    @field_validator("phrases")
    @classmethod
    def _lower_phrases(cls, v: List[str]) -> List[str]:
        phrases = [p.strip().lower() for p in v]
        if any(not p for p in phrases):
            raise ValueError("note phrases must be non-empty")
        return phrases

    @field_validator("ordered_patterns")
    @classmethod
    def _lower_patterns(cls, v: List[List[str]]) -> List[List[str]]:
        patterns = []
        for parts in v:
            lowered = [p.strip().lower() for p in parts]
            if len(lowered) < 2 or any(not p for p in lowered):
                raise ValueError(f"ordered pattern needs at least two non-empty parts: {parts!r}")
            patterns.append(lowered)
        return patterns


class StatinRuleConfig(BaseModel):
    min_age: int = 40
    max_age: int = 75
    diabetes_code_prefixes: List[str]
    exclusion_rules: List[ExclusionRuleSet]
    statin_category: str = "statin"
    # drug name (lowercase) -> minimum dose in mg for High intensity
    high_intensity_thresholds_mg: Dict[str, float]
    note_scanning: NoteScanConfig = NoteScanConfig()

    @field_validator("diabetes_code_prefixes")
    @classmethod
    def _validate_prefixes(cls, v: List[str]) -> List[str]:
        prefixes = _clean_codes(v)
        if not prefixes:
            raise ValueError("at least one diabetes code prefix is required")
        return prefixes

    @field_validator("high_intensity_thresholds_mg")
    @classmethod
    def _validate_thresholds(cls, v: Dict[str, float]) -> Dict[str, float]:
        if not v:
            raise ValueError("threshold table is empty")
        table = {}
        for drug, threshold in v.items():
            name = drug.strip().lower()
            if not name:
                raise ValueError("threshold table has an empty drug name")
            if not math.isfinite(threshold) or threshold <= 0:
                raise ValueError(f"threshold for {drug!r} must be a positive number of mg")
            table[name] = float(threshold)
        return table

    @field_validator("statin_category")
    @classmethod
    def _lower_category(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("statin_category must be non-empty")
        return v.strip().lower()

    @model_validator(mode="after")
    def _check_ranges(self):
        if self.min_age < 0 or self.min_age > self.max_age:
            raise ValueError(f"invalid age range [{self.min_age}, {self.max_age}]")
        categories = [rule.category for rule in self.exclusion_rules]
        if len(categories) != len(set(categories)):
            raise ValueError("each exclusion category may only have one rule set")
        missing = [c.value for c in ExclusionCategory if c not in categories]
        if missing:
            raise ValueError(f"missing exclusion rule sets: {missing}")
        return self


def build_rule_config(data: Dict[str, Any]) -> StatinRuleConfig:
    try:
        return StatinRuleConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid rule configuration: {e}") from e


def load_rule_config(path: Optional[Union[str, Path]] = None) -> StatinRuleConfig:
    """
    Load and validate the guideline rule table.
    Any problem here is fatal: no patient is processed with a broken table.
    """
    path = Path(path or settings.RULES_FILE)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read rule configuration {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Rule configuration {path} must be a JSON object")
    return build_rule_config(data)


settings = Settings()
