"""Turn a learner's answer log into an accuracy summary for adaptive prompts."""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping

from .models import AnswerRecord, PerformanceSummary, WeakTopic

NO_DATA_TEXT = "No previous performance data available. Generate general practice questions."
MAX_WEAK_TOPICS = 3

TIER_GUIDANCE = {
    "fundamentals": "Focus on fundamental concepts and basic understanding.",
    "application": "Focus on application and analysis questions.",
    "advanced": "Focus on advanced concepts and complex problem-solving.",
}


def _coerce(record: AnswerRecord | Mapping) -> AnswerRecord:
    if isinstance(record, AnswerRecord):
        return record
    return AnswerRecord.model_validate(record)


def tier_for(accuracy: float) -> str:
    if accuracy < 60:
        return "fundamentals"
    if accuracy < 80:
        return "application"
    return "advanced"


def rank_weak_topics(records: Iterable[AnswerRecord], limit: int = MAX_WEAK_TOPICS) -> List[WeakTopic]:
    """Most frequent topics among incorrect answers; ties keep first-seen order."""
    counts: Dict[str, int] = {}
    for record in records:
        if not record.is_correct and record.topic:
            counts[record.topic] = counts.get(record.topic, 0) + 1
    # dicts preserve insertion order and sorted() is stable
    ranked = sorted(counts.items(), key=lambda item: -item[1])
    return [WeakTopic(topic=topic, incorrect_count=count) for topic, count in ranked[:limit]]


def analyze_performance(records: Iterable[AnswerRecord | Mapping]) -> PerformanceSummary:
    answers = [_coerce(record) for record in records or []]
    if not answers:
        return PerformanceSummary(text=NO_DATA_TEXT, has_data=False)

    total = len(answers)
    correct = sum(1 for answer in answers if answer.is_correct)
    accuracy = correct / total * 100
    weak_topics = rank_weak_topics(answers)
    tier = tier_for(accuracy)

    text = f"Overall accuracy: {accuracy:.1f}% ({correct}/{total} correct). "
    if weak_topics:
        areas = ", ".join(f"{item.topic} ({item.incorrect_count} incorrect)" for item in weak_topics)
        text += f"Areas needing improvement: {areas}. "
    text += TIER_GUIDANCE[tier]

    return PerformanceSummary(
        accuracy_percent=accuracy,
        correct_count=correct,
        total_count=total,
        weak_topics=weak_topics,
        tier=tier,
        text=text,
        has_data=True,
    )


__all__ = ["NO_DATA_TEXT", "TIER_GUIDANCE", "analyze_performance", "rank_weak_topics", "tier_for"]
