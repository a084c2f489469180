from __future__ import annotations

from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from itemguard.utils.io import read_yaml

load_dotenv()


STEM_SUBJECTS = frozenset({"math", "algebra", "geometry"})


class PathsConfig(BaseModel):
    curriculum_file: str | None = Field(
        None, description="YAML file mapping subject -> grade -> topic list."
    )
    output_dir: str = Field("runs/validate", description="Where the CLI writes reports.")


class OracleConfig(BaseModel):
    provider: str | None = Field(
        None, description="openai | azure; unset falls back to ITEMGUARD_LLM_PROVIDER, then openai"
    )
    agents_model: str = "openai/gpt-4.1-mini"
    verifier_stem_model: str = "google/gemini-3-flash-preview"
    verifier_humanities_model: str = "google/gemini-2.5-flash-lite"
    timeout_s: float = Field(90.0, description="Hard per-call timeout at the judge/fixer boundary.")
    client_max_retries: int = 0
    judge_max_tokens: int = 4000
    fixer_max_tokens: int = 3000
    judge_temperature: float = 0.1
    fixer_temperature: float = 0.2

    def verifier_model(self, subject: str, grade: int | None = None) -> str:
        """
        Answer-verifier routing: cheap model for early-grade arithmetic and
        early-grade humanities, reasoning-capable model for the rest.
        """
        subject = (subject or "").strip().lower()
        if subject in STEM_SUBJECTS:
            if grade is not None and grade <= 6 and subject == "math":
                return self.agents_model
            return self.verifier_stem_model
        if grade is not None and grade <= 6:
            return self.agents_model
        return self.verifier_humanities_model

    def fixer_model(self, subject: str, grade: int | None = None) -> str:
        # Same routing as the verifier; the fixer only differs in token budget.
        return self.verifier_model(subject, grade)


class RemediationConfig(BaseModel):
    enabled: bool = True
    budget: int = Field(10, ge=0, description="Max items repaired per pipeline run.")
    remediable_warning_codes: list[str] = Field(
        default_factory=lambda: ["DIFFICULTY_MISMATCH"],
        description="Warning codes that still qualify an item for repair.",
    )
    excluded_subjects: list[str] = Field(
        default_factory=lambda: ["geometry"],
        description="Subjects where the fixer is not trusted; issues are only logged.",
    )
    commit_unverified: bool = Field(
        False, description="Commit repairs when the re-verification judge is unavailable."
    )


class UsageConfig(BaseModel):
    pricing: dict[str, tuple[float, float]] = Field(
        default_factory=dict,
        description="model -> (input, output) price per 1M tokens; overrides built-ins.",
    )


class RunConfig(BaseModel):
    run_id: str = "dev"
    paths: PathsConfig = Field(default_factory=PathsConfig)
    oracle: OracleConfig = Field(default_factory=OracleConfig)
    remediation: RemediationConfig = Field(default_factory=RemediationConfig)
    usage: UsageConfig = Field(default_factory=UsageConfig)


def load_config(path: str | Path | None = None) -> RunConfig:
    if path is None:
        return RunConfig()
    raw: dict[str, Any] = read_yaml(path)
    return RunConfig.model_validate(raw)
