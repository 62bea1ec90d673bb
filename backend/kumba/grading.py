"""Quiz grading, attempt limits and the hand-off to topic completion."""
from __future__ import annotations
import logging
import statistics
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import AttemptsExceeded, InvalidSubmission, NoQuizResults
from .insights import DEFAULT_INSIGHTS, InsightConfig
from .models import QuizResult
from .modes import mode_settings_for
from .repository import get_owned_quiz, result_snapshot
from .schemas import GradedAnswer, GradedResult, SubmittedAnswer
from .settings import settings
from .unlock import complete_topic, require_entry
from .utils import mean_rounded, naive_utc, percent, resolve_now, round_half_up


logger = logging.getLogger(__name__)

DEFAULT_QUESTION_POINTS = 10
SECONDS_PER_QUESTION = 60


def question_id(question: Dict[str, Any], index: int):
	qid = question.get("id")
	return index + 1 if qid is None or qid == "" else qid


def question_points(question: Dict[str, Any]) -> int:
	points = question.get("points")
	return DEFAULT_QUESTION_POINTS if points is None else int(points)


def _normalize_answer(value: Any) -> Any:
	if isinstance(value, bool):
		return str(value).lower()
	if isinstance(value, (int, float)):
		return str(int(value)) if float(value).is_integer() else str(value)
	if isinstance(value, str):
		return value.strip().lower()
	return value


def answers_match(given: Any, expected: Any) -> bool:
	if given is None or expected is None:
		return False
	return _normalize_answer(given) == _normalize_answer(expected)


def grade_answers(
	questions: Sequence[Dict[str, Any]],
	answers: Sequence[SubmittedAnswer],
) -> Tuple[int, List[GradedAnswer]]:
	"""Score a submission against the answer key.

	Returns ``(score, graded)`` where score is the rounded percentage of points
	earned. A quiz whose points add up to zero scores 0.
	"""
	by_id = {str(a.question_id): a for a in answers}
	total = 0
	earned = 0
	graded: List[GradedAnswer] = []
	for index, question in enumerate(questions):
		qid = question_id(question, index)
		points = question_points(question)
		total += points
		submitted = by_id.get(str(qid))
		user_answer = submitted.selected_answer if submitted is not None else None
		correct = answers_match(user_answer, question.get("correctAnswer"))
		if correct:
			earned += points
		graded.append(
			GradedAnswer(
				question_id=qid,
				question=question.get("question"),
				user_answer=user_answer,
				correct_answer=question.get("correctAnswer"),
				is_correct=correct,
				explanation=question.get("explanation"),
				points=points if correct else 0,
				time_spent=submitted.time_spent if submitted is not None else 0,
			)
		)
	return percent(earned, total), graded


def _attempts_used(db: Session, user_id: str, quiz_id: str) -> int:
	return (
		db.query(func.count(QuizResult.id))
		.filter(QuizResult.user_id == user_id, QuizResult.quiz_id == quiz_id)
		.scalar()
		or 0
	)


def submit_quiz(
	db: Session,
	user_id: str,
	quiz_id: str,
	answers: Optional[Sequence[SubmittedAnswer]],
	time_spent: int = 0,
	now: Optional[datetime] = None,
	rules: InsightConfig = DEFAULT_INSIGHTS,
) -> GradedResult:
	"""Grade one attempt, append it to the result log and complete the topic on a pass.

	``time_spent`` is in seconds; whole minutes of it are added to the topic's
	study time when the attempt completes the topic.
	"""
	if answers is None or isinstance(answers, (str, bytes)):
		raise InvalidSubmission()
	quiz, topic, plan = get_owned_quiz(db, user_id, quiz_id)
	require_entry(db, user_id, topic, plan)

	max_attempts = settings.quiz_max_attempts
	used = _attempts_used(db, user_id, quiz.id)
	if used >= max_attempts:
		raise AttemptsExceeded(attempts_used=used, max_attempts=max_attempts)

	questions = list(quiz.questions or [])
	score, graded = grade_answers(questions, list(answers))
	passed = score >= quiz.passing_score
	result = QuizResult(
		user_id=user_id,
		quiz_id=quiz.id,
		attempt_number=used + 1,
		score=score,
		passed=passed,
		answers=[g.model_dump(mode="json") for g in graded],
		time_spent=time_spent,
		completed_at=naive_utc(resolve_now(now)),
	)
	db.add(result)
	try:
		db.commit()
	except IntegrityError:
		# A concurrent submission took this attempt slot
		db.rollback()
		logger.warning("Rejected concurrent attempt %d on quiz %s by %s", used + 1, quiz.id, user_id)
		raise AttemptsExceeded(attempts_used=used + 1, max_attempts=max_attempts)
	logger.info("Quiz %s attempt %d by %s scored %d (passed=%s)", quiz.id, used + 1, user_id, score, passed)

	completion = None
	if passed:
		completion = complete_topic(
			db,
			user_id,
			topic.id,
			time_spent=max(time_spent, 0) // 60,
			mastery_score=score,
			now=now,
			rules=rules,
		)

	minimum = mode_settings_for(plan).minimum_score
	return GradedResult(
		id=result.id,
		quiz_id=quiz.id,
		score=score,
		passed=passed,
		passing_score=quiz.passing_score,
		total_questions=len(questions),
		correct_answers=sum(1 for g in graded if g.is_correct),
		time_spent=time_spent,
		answers=graded,
		attempts_used=used + 1,
		attempts_remaining=max(max_attempts - (used + 1), 0),
		meets_mode_minimum=None if minimum is None else score >= minimum,
		completion=completion,
	)


def get_quiz_for_attempt(db: Session, user_id: str, quiz_id: str) -> Dict[str, Any]:
	"""The quiz as shown to a learner about to attempt it, answer key removed."""
	quiz, topic, plan = get_owned_quiz(db, user_id, quiz_id)
	require_entry(db, user_id, topic, plan)
	max_attempts = settings.quiz_max_attempts
	used = _attempts_used(db, user_id, quiz.id)
	if used >= max_attempts:
		raise AttemptsExceeded(attempts_used=used, max_attempts=max_attempts)

	questions = list(quiz.questions or [])
	last = (
		db.query(QuizResult)
		.filter(QuizResult.user_id == user_id, QuizResult.quiz_id == quiz.id)
		.order_by(QuizResult.completed_at.desc(), QuizResult.attempt_number.desc())
		.first()
	)
	return {
		"id": quiz.id,
		"topic_id": topic.id,
		"title": quiz.title,
		"description": quiz.description,
		"passing_score": quiz.passing_score,
		"questions": [
			{
				"id": question_id(q, i),
				"type": q.get("type"),
				"question": q.get("question"),
				"options": q.get("options"),
				"points": question_points(q),
			}
			for i, q in enumerate(questions)
		],
		"time_limit": len(questions) * SECONDS_PER_QUESTION,
		"attempts_remaining": max_attempts - used,
		"last_attempt": result_snapshot(last).model_dump(mode="json") if last is not None else None,
	}


def _consistency(scores: List[int]) -> int:
	if len(scores) < 2:
		return 100
	mean = statistics.fmean(scores)
	deviation = statistics.pstdev(scores)
	if deviation == 0:
		return 100
	if mean == 0:
		return 0
	return max(0, round_half_up(100 - deviation / mean * 100))


def _time_efficiency(rows: List[QuizResult]) -> float:
	"""Average score per minute of quiz time, one decimal."""
	average_seconds = statistics.fmean(r.time_spent or 0 for r in rows)
	if average_seconds <= 0:
		return 0.0
	average_score = statistics.fmean(r.score for r in rows)
	return round_half_up(average_score / (average_seconds / 60) * 10) / 10


def _question_areas(rows: List[QuizResult], limit: int = 3) -> Tuple[List[str], List[str]]:
	tally: Dict[str, List[int]] = {}
	for row in rows:
		for answer in row.answers or []:
			text = answer.get("question") or ""
			key = text if len(text) <= 50 else text[:50] + "..."
			counts = tally.setdefault(key, [0, 0])
			counts[1] += 1
			if answer.get("is_correct"):
				counts[0] += 1
	strong = [q for q, (c, n) in tally.items() if c / n >= 0.8]
	weak = [q for q, (c, n) in tally.items() if c / n < 0.5]
	return strong[:limit], weak[:limit]


def summarize_attempts(db: Session, user_id: str, quiz_id: str) -> Dict[str, Any]:
	quiz, topic, _ = get_owned_quiz(db, user_id, quiz_id)
	rows = (
		db.query(QuizResult)
		.filter(QuizResult.user_id == user_id, QuizResult.quiz_id == quiz.id)
		.order_by(QuizResult.completed_at.desc(), QuizResult.attempt_number.desc())
		.all()
	)
	if not rows:
		raise NoQuizResults()

	scores = [r.score for r in rows]
	passed = sum(1 for r in rows if r.passed)
	strong, weak = _question_areas(rows)
	return {
		"quiz": {
			"title": quiz.title,
			"topic": topic.title,
			"day_index": topic.day_index,
			"passing_score": quiz.passing_score,
		},
		"statistics": {
			"best_score": max(scores),
			"average_score": mean_rounded(scores),
			"total_attempts": len(rows),
			"passed_attempts": passed,
			"total_time_spent": sum(r.time_spent or 0 for r in rows),
			"pass_rate": percent(passed, len(rows)),
		},
		"results": [
			{
				"id": r.id,
				"score": r.score,
				"passed": r.passed,
				"completed_at": r.completed_at,
				"time_spent": r.time_spent,
				"answers": r.answers,
				"attempt_number": r.attempt_number,
			}
			for r in rows
		],
		"analysis": {
			"improvement": scores[0] - scores[-1] if len(scores) > 1 else 0,
			"consistency": _consistency(scores),
			"time_efficiency": _time_efficiency(rows),
			"strong_areas": strong,
			"weak_areas": weak,
		},
	}
