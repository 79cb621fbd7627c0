"""
Pydantic schemas for the generate-missing pipeline.

GeneratedItem      — one question object as returned by the generative model
RuleFailure        — one failed blueprint rule, reported back to the caller
RuleOutcome        — per-rule result (skipped / done / failed)
GenerationSummary  — whole-run result aggregated over all rules
"""

from typing import List, Optional, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator


DIFFICULTY_WORDS = {
    "very easy": 1,
    "easy": 2,
    "medium": 3,
    "hard": 4,
    "very hard": 5,
}


# ─── Model output ──────────────────────────────────────────────────────────────

class GeneratedItem(BaseModel):
    """
    Strict shape of one generated question:
      text, type, options[4] (MCQ only), correctOption (0-indexed, MCQ only),
      difficulty, explanation, paragraphText (paragraph only)
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    text: str = Field(..., min_length=1)
    type: Optional[str] = None
    options: List[str] = Field(default_factory=list)
    correct_option: Optional[int] = Field(None, alias="correctOption")
    difficulty: Optional[int] = Field(None, ge=1, le=5)
    explanation: str = ""
    paragraph_text: Optional[str] = Field(None, alias="paragraphText")

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("question text is blank")
        return v.strip()

    @field_validator("difficulty", mode="before")
    @classmethod
    def _coerce_difficulty(cls, v: Any) -> Any:
        if isinstance(v, str):
            key = v.strip().lower()
            if key in DIFFICULTY_WORDS:
                return DIFFICULTY_WORDS[key]
            if not key:
                return None
        return v

    @field_validator("options", mode="before")
    @classmethod
    def _options_as_text(cls, v: Any) -> Any:
        # numeric answers ("options": [3, 4, 5, 6]) are stored as text
        if isinstance(v, list):
            return [str(o) if isinstance(o, (int, float)) and not isinstance(o, bool) else o for o in v]
        return v

    @field_validator("explanation", mode="before")
    @classmethod
    def _explanation_default(cls, v: Any) -> Any:
        return "" if v is None else v


# ─── Pipeline results ──────────────────────────────────────────────────────────

class RuleFailure(BaseModel):
    section_id: int
    rule_id: int
    stage: str
    error_type: str
    error: str


class RuleOutcome(BaseModel):
    section_id: int
    rule_id: int
    state: str                      # skipped | done | failed
    requested: int = 0              # shortage at the time of the run
    generated: int = 0
    citation: Optional[str] = None
    context_chunk_ids: List[int] = Field(default_factory=list)


class GenerationSummary(BaseModel):
    exam_id: int
    run_id: Optional[int] = None
    generated_count: int = 0
    outcomes: List[RuleOutcome] = Field(default_factory=list)
    failures: List[RuleFailure] = Field(default_factory=list)

    @property
    def attempted(self) -> int:
        return sum(1 for o in self.outcomes if o.state != "skipped")

    @property
    def success(self) -> bool:
        """False only when rules were attempted and every one of them failed."""
        return not (self.attempted and len(self.failures) == self.attempted)

    @property
    def error(self) -> Optional[str]:
        """Failure summary when the run was unsuccessful."""
        if self.success:
            return None
        reasons = "; ".join(f"rule {f.rule_id} [{f.stage}] {f.error}" for f in self.failures)
        return f"All {len(self.failures)} rule(s) failed: {reasons}"

    def to_response(self) -> dict:
        response = {
            "success": self.success,
            "generatedCount": self.generated_count,
            "skipped": sum(1 for o in self.outcomes if o.state == "skipped"),
            "runId": self.run_id,
            "failures": [f.model_dump() for f in self.failures],
            "rules": [o.model_dump() for o in self.outcomes],
        }
        if not self.success:
            response["error"] = self.error
        return response
