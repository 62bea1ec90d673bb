from datetime import datetime, timedelta, timezone

import pytest

from kumba.errors import AttemptsExceeded, InvalidSubmission, NoQuizResults, TopicLocked
from kumba.grading import answers_match, get_quiz_for_attempt, grade_answers, submit_quiz, summarize_attempts
from kumba.models import LearningProgress, QuizResult, TOPIC_UNLOCKED
from kumba.schemas import SubmittedAnswer

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def test_answer_matching_normalizes():
	assert answers_match(" Dakar ", "dakar")
	assert answers_match(True, "true")
	assert answers_match(2.0, 2)
	assert answers_match("1", 1)
	assert not answers_match(None, 1)
	assert not answers_match(1, None)
	assert not answers_match(0, 1)


def test_grading_weights_by_points():
	questions = [
		{"id": "a", "correctAnswer": 0, "points": 30},
		{"id": "b", "correctAnswer": 1, "points": 70},
	]
	score, graded = grade_answers(questions, [SubmittedAnswer(question_id="b", selected_answer=1)])
	assert score == 70
	assert [g.is_correct for g in graded] == [False, True]
	assert graded[0].user_answer is None


def test_missing_points_default_to_ten():
	questions = [{"correctAnswer": 0}, {"correctAnswer": 1}, {"correctAnswer": 2}]
	answers = [SubmittedAnswer(question_id=1, selected_answer=0), SubmittedAnswer(question_id=2, selected_answer=1)]
	score, _ = grade_answers(questions, answers)
	assert score == 67


def test_zero_total_points_scores_zero():
	score, _ = grade_answers([{"id": 1, "correctAnswer": 0, "points": 0}], [SubmittedAnswer(question_id=1, selected_answer=0)])
	assert score == 0


def test_grading_is_deterministic(quiz_questions, answers):
	first = grade_answers(quiz_questions, answers(2))
	second = grade_answers(quiz_questions, answers(2))
	assert first == second
	assert first[0] == 50


def test_three_of_four_passes_and_completes(db, make_plan, quiz_of, answers):
	_, topics = make_plan(days=3)
	quiz = quiz_of(topics[0])
	result = submit_quiz(db, "amara", quiz.id, answers(3), time_spent=150, now=NOW)

	assert result.score == 75
	assert result.passed
	assert result.correct_answers == 3
	assert result.total_questions == 4
	assert result.attempts_used == 1
	assert result.attempts_remaining == 2
	assert result.meets_mode_minimum is True
	assert result.completion is not None
	assert result.completion.progress.mastery_score == 75
	assert result.completion.progress.time_spent == 2
	assert result.completion.next_topic_unlocked
	assert result.completion.next_topic.id == topics[1].id


def test_failed_attempt_is_recorded_without_completion(db, make_plan, quiz_of, answers):
	_, topics = make_plan(days=2)
	result = submit_quiz(db, "amara", quiz_of(topics[0]).id, answers(1), now=NOW)
	assert result.score == 25
	assert not result.passed
	assert result.completion is None
	assert db.query(QuizResult).count() == 1
	assert db.query(LearningProgress).count() == 0


def test_fourth_attempt_is_refused_and_not_stored(db, make_plan, quiz_of, answers):
	_, topics = make_plan(days=2)
	quiz = quiz_of(topics[0])
	for n in range(3):
		submit_quiz(db, "amara", quiz.id, answers(0), now=NOW + timedelta(minutes=n))
	with pytest.raises(AttemptsExceeded) as exc:
		submit_quiz(db, "amara", quiz.id, answers(4), now=NOW + timedelta(minutes=5))
	assert exc.value.detail["attempts_used"] == 3
	assert db.query(QuizResult).count() == 3
	assert [r.attempt_number for r in db.query(QuizResult).order_by(QuizResult.attempt_number)] == [1, 2, 3]


def test_locked_topic_quiz_is_refused(db, make_plan, quiz_of, answers):
	_, topics = make_plan(days=2)
	with pytest.raises(TopicLocked):
		submit_quiz(db, "amara", quiz_of(topics[1]).id, answers(4))
	assert db.query(QuizResult).count() == 0


def test_malformed_answers_are_rejected(db, make_plan, quiz_of):
	_, topics = make_plan(days=1)
	with pytest.raises(InvalidSubmission):
		submit_quiz(db, "amara", quiz_of(topics[0]).id, None)
	with pytest.raises(InvalidSubmission):
		submit_quiz(db, "amara", quiz_of(topics[0]).id, "all of them")


def test_quiz_for_attempt_hides_answer_key(db, make_plan, quiz_of):
	_, topics = make_plan(days=1)
	view = get_quiz_for_attempt(db, "amara", quiz_of(topics[0]).id)
	assert view["attempts_remaining"] == 3
	assert view["time_limit"] == 240
	assert view["last_attempt"] is None
	assert all("correctAnswer" not in q for q in view["questions"])


def test_summary_of_attempts(db, make_plan, quiz_of, answers):
	_, topics = make_plan(days=2)
	quiz = quiz_of(topics[0])
	submit_quiz(db, "amara", quiz.id, answers(2), time_spent=60, now=NOW)
	submit_quiz(db, "amara", quiz.id, answers(4), time_spent=60, now=NOW + timedelta(hours=1))

	summary = summarize_attempts(db, "amara", quiz.id)
	stats = summary["statistics"]
	assert stats["best_score"] == 100
	assert stats["average_score"] == 75
	assert stats["total_attempts"] == 2
	assert stats["passed_attempts"] == 1
	assert stats["pass_rate"] == 50
	assert summary["analysis"]["improvement"] == 50
	assert summary["results"][0]["attempt_number"] == 2
	assert "2 + 2?" in summary["analysis"]["strong_areas"]


def test_summary_without_results(db, make_plan, quiz_of):
	_, topics = make_plan(days=1)
	with pytest.raises(NoQuizResults):
		summarize_attempts(db, "amara", quiz_of(topics[0]).id)


def test_zero_is_a_real_question_id():
	questions = [
		{"id": 0, "correctAnswer": 1, "points": 50},
		{"id": 1, "correctAnswer": 2, "points": 50},
	]
	answers = [SubmittedAnswer(question_id=0, selected_answer=1), SubmittedAnswer(question_id=1, selected_answer=2)]
	score, graded = grade_answers(questions, answers)
	assert score == 100
	assert [g.question_id for g in graded] == [0, 1]


def test_lost_attempt_slot_is_refused_and_not_stored(db, make_plan, quiz_of, answers, monkeypatch):
	_, topics = make_plan(days=2)
	quiz = quiz_of(topics[0])
	submit_quiz(db, "amara", quiz.id, answers(0), now=NOW)
	# Another request counted attempts before this one was committed
	monkeypatch.setattr("kumba.grading._attempts_used", lambda db, user_id, quiz_id: 0)
	with pytest.raises(AttemptsExceeded) as exc:
		submit_quiz(db, "amara", quiz.id, answers(4), now=NOW + timedelta(minutes=1))
	assert exc.value.detail["attempts_used"] == 1
	assert db.query(QuizResult).count() == 1
	assert db.query(LearningProgress).count() == 0


def test_unlocked_status_does_not_bypass_strict_order(db, make_plan, quiz_of, answers):
	_, topics = make_plan(days=3)
	topics[2].status = TOPIC_UNLOCKED
	db.commit()
	quiz = quiz_of(topics[2])
	with pytest.raises(TopicLocked) as exc:
		submit_quiz(db, "amara", quiz.id, answers(4), now=NOW)
	assert exc.value.detail["blocking_day_index"] == 1
	with pytest.raises(TopicLocked):
		get_quiz_for_attempt(db, "amara", quiz.id)
	assert db.query(QuizResult).count() == 0
