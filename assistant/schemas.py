"""Output shapes the hosted model must return for each AI feature."""

from typing import List, Literal

from pydantic import BaseModel, Field

Level = Literal["high", "medium", "low"]


class Insight(BaseModel):
    category: Literal["pattern", "recommendation", "warning", "positive"]
    title: str
    description: str
    confidence: Level


class HealthInsights(BaseModel):
    insights: List[Insight] = Field(default_factory=list)
    summary: str


class PossibleCondition(BaseModel):
    name: str
    likelihood: Level
    description: str


class SymptomAnalysis(BaseModel):
    possible_conditions: List[PossibleCondition]
    urgency: Literal["emergency", "urgent", "routine", "monitor"]
    recommendations: List[str]
    disclaimer: str


class DrugInteraction(BaseModel):
    medications: List[str]
    severity: Literal["severe", "moderate", "mild"]
    description: str
    recommendation: str


class DrugInteractionReport(BaseModel):
    has_interactions: bool
    interactions: List[DrugInteraction] = Field(default_factory=list)
    summary: str


class MissedMedicationAdvice(BaseModel):
    can_take_now: bool
    recommendation: str
    reasoning: str
    next_steps: List[str]
    urgency: Literal["critical", "important", "routine"]


class KeyMetrics(BaseModel):
    total_logs: int
    medication_adherence: str
    common_symptoms: List[str] = Field(default_factory=list)


class Trend(BaseModel):
    category: str
    trend: Literal["improving", "stable", "declining"]
    description: str


class HealthSummary(BaseModel):
    period: str
    overall_health: Literal["excellent", "good", "fair", "concerning"]
    key_metrics: KeyMetrics
    trends: List[Trend] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    summary: str


# Guidance shown with a symptom analysis, per urgency level
URGENCY_GUIDANCE = {
    "emergency": "Seek immediate medical attention. Call emergency services or go to the nearest emergency room.",
    "urgent": "Schedule an appointment with your doctor as soon as possible.",
    "routine": "Consider scheduling a routine appointment with your doctor.",
    "monitor": "Monitor your symptoms. Seek care if they worsen or persist.",
}
