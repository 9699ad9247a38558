"""
AI-backed health features.

Each function builds a prompt from the caller's values (or rows fetched from
Supabase), asks the hosted model for a fixed output shape and returns the
validated object. Failures raise AIServiceError; callers decide the fallback.
"""

import logging
from datetime import date, timedelta
from typing import List, Optional

from errors import ValidationError
from models.health_log_model import list_health_logs
from models.medication_model import conditions_with_medications
from .llm import AIClient
from .schemas import (
    DrugInteractionReport, HealthInsights, HealthSummary,
    MissedMedicationAdvice, SymptomAnalysis,
)

logger = logging.getLogger(__name__)

GREETING_FALLBACK = "Welcome to MediTrack!"
INSIGHT_LOG_LIMIT = 30
SUMMARY_PERIOD_DAYS = {"week": 7, "month": 30}


def generate_health_greeting(ai: AIClient, user_name: Optional[str] = None) -> str:
    name_line = f"Their name is {user_name}." if user_name else ""
    prompt = f"""Generate a short, cheerful, slightly humorous greeting for someone who is managing their health and medications.
{name_line}
Include a light joke or pun about staying healthy, kept kind and uplifting.
Keep it under 50 words and make it encouraging."""
    return ai.generate_text(prompt, max_tokens=100)


def analyze_health_logs(ai: AIClient, client, user_id: str) -> HealthInsights:
    logs = list_health_logs(client, user_id, limit=INSIGHT_LOG_LIMIT)
    if not logs:
        return HealthInsights(
            insights=[],
            summary="Not enough health data to analyze. Start logging your health to get personalized insights!",
        )

    logs_text = "\n".join(log.as_line() for log in logs)
    prompt = f"""Analyze these health logs and provide personalized insights:

{logs_text}

Look for:
- Patterns (e.g., "consistent fatigue on Mondays")
- Recommendations for lifestyle changes
- When to see a doctor
- Positive trends

Provide 2-4 actionable insights."""
    logger.info("Analyzing %d health logs for user %s", len(logs), user_id)
    return ai.generate_object(prompt, HealthInsights)


def analyze_symptoms(ai: AIClient, symptoms: str) -> SymptomAnalysis:
    symptoms = (symptoms or "").strip()
    if not symptoms:
        raise ValidationError("Describe your symptoms first.")

    prompt = f"""Analyze these symptoms and provide possible conditions: "{symptoms}"

Provide:
1. 2-4 possible conditions with likelihood
2. Urgency level (emergency, urgent, routine, monitor)
3. Recommendations (when to see doctor, self-care tips)
4. Medical disclaimer

Be cautious and err on the side of recommending professional medical advice."""
    return ai.generate_object(prompt, SymptomAnalysis)


def check_drug_interactions(ai: AIClient, medications: List[str]) -> DrugInteractionReport:
    names = [m.strip() for m in medications if m and m.strip()]
    if len(names) < 2:
        return DrugInteractionReport(
            has_interactions=False,
            interactions=[],
            summary="Need at least 2 medications to check for interactions.",
        )

    prompt = f"""Check for drug interactions between these medications: {", ".join(names)}

Analyze:
1. Known interactions between these drugs
2. Severity level (severe, moderate, mild)
3. What happens when combined
4. Recommendations (timing, alternatives, doctor consultation)

Be thorough and cautious. Include a disclaimer to consult a healthcare provider."""
    return ai.generate_object(prompt, DrugInteractionReport)


def advise_missed_medication(ai: AIClient, medication_name: str, dosage: str,
                             scheduled_time: str, current_time: str,
                             next_scheduled_time: Optional[str] = None) -> MissedMedicationAdvice:
    next_line = f"- Next scheduled dose: {next_scheduled_time}" if next_scheduled_time else ""
    prompt = f"""A patient missed their medication dose:
- Medication: {medication_name}
- Dosage: {dosage}
- Scheduled time: {scheduled_time}
- Current time: {current_time}
{next_line}

Advise:
1. Can they take it now?
2. What should they do?
3. Should they contact their doctor?
4. Any risks or considerations?

Be cautious and recommend consulting healthcare provider when uncertain."""
    return ai.generate_object(prompt, MissedMedicationAdvice)


def generate_health_summary(ai: AIClient, client, user_id: str, period: str,
                            today: Optional[date] = None) -> HealthSummary:
    if period not in SUMMARY_PERIOD_DAYS:
        raise ValidationError("Period must be 'week' or 'month'.")

    start_date = (today or date.today()) - timedelta(days=SUMMARY_PERIOD_DAYS[period])
    logs = list_health_logs(client, user_id, since=start_date)
    conditions = conditions_with_medications(client, user_id)

    logs_text = "\n".join(log.as_line() for log in logs) or "No logs"
    meds_text = ", ".join(
        med.label for condition in conditions for med in condition.medications
    ) or "No medications"

    prompt = f"""Generate a {period}ly health summary report:

Health Logs ({len(logs)} entries):
{logs_text}

Current Medications:
{meds_text}

Provide:
1. Overall health assessment
2. Key metrics (log count, adherence estimate, common symptoms)
3. Trends (improving/stable/declining)
4. Personalized recommendations
5. Executive summary

Be encouraging and actionable."""
    return ai.generate_object(prompt, HealthSummary)
