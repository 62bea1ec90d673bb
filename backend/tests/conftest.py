import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from kumba.db import Base
from kumba.models import AuthUser, LearningPlan, Quiz, Topic, TOPIC_LOCKED, TOPIC_UNLOCKED
from kumba.schemas import SubmittedAnswer

# Four questions worth 25 points each
QUESTIONS = [
	{"id": 1, "type": "multiple_choice", "question": "2 + 2?", "options": ["3", "4", "5"], "correctAnswer": 1, "points": 25},
	{"id": 2, "type": "true_false", "question": "The sky is blue", "options": ["True", "False"], "correctAnswer": True, "points": 25},
	{"id": 3, "type": "short_answer", "question": "Capital of Senegal?", "correctAnswer": "Dakar", "points": 25},
	{"id": 4, "type": "multiple_choice", "question": "Largest planet?", "options": ["Mars", "Jupiter"], "correctAnswer": 1, "points": 25},
]

ALL_CORRECT = [
	{"question_id": 1, "selected_answer": 1},
	{"question_id": 2, "selected_answer": True},
	{"question_id": 3, "selected_answer": " dakar "},
	{"question_id": 4, "selected_answer": 1},
]

ALL_WRONG = [
	{"question_id": 1, "selected_answer": 0},
	{"question_id": 2, "selected_answer": False},
	{"question_id": 3, "selected_answer": "Accra"},
	{"question_id": 4, "selected_answer": 0},
]


@pytest.fixture
def engine(tmp_path):
	"""Provide a fresh SQLite database per test."""
	engine = create_engine(
		f"sqlite:///{tmp_path / 'kumba_test.db'}",
		connect_args={"check_same_thread": False},
		future=True,
	)
	Base.metadata.create_all(bind=engine)
	yield engine
	engine.dispose()


@pytest.fixture
def session_factory(engine):
	return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


@pytest.fixture
def db(session_factory):
	session = session_factory()
	yield session
	session.close()


@pytest.fixture
def learner(db):
	db.add(AuthUser(username="amara", password_hash="x"))
	db.add(AuthUser(username="kofi", password_hash="x"))
	db.commit()
	return "amara"


@pytest.fixture
def make_plan(db, learner):
	"""Factory: a plan of ``days`` topics, day 1 unlocked, each with a 4x25 quiz unless ``with_quiz`` is False."""

	def _make(days=3, with_quiz=True, user_id=learner, mode="strict", passing_score=70):
		plan = LearningPlan(user_id=user_id, title="Master Algebra in %d Days" % days, total_days=days, mode=mode)
		db.add(plan)
		db.flush()
		topics = []
		for day in range(1, days + 1):
			topic = Topic(
				learning_plan_id=plan.id,
				day_index=day,
				title=f"Algebra day {day}",
				content=f"Content for day {day}",
				goals=[f"goal {day}"],
				time_estimate=60,
				status=TOPIC_UNLOCKED if day == 1 else TOPIC_LOCKED,
			)
			db.add(topic)
			db.flush()
			if with_quiz:
				db.add(Quiz(topic_id=topic.id, title=f"Quiz {day}", questions=QUESTIONS, passing_score=passing_score))
			topics.append(topic)
		db.commit()
		return plan, topics

	return _make


@pytest.fixture
def quiz_of(db):
	def _quiz(topic):
		return db.query(Quiz).filter(Quiz.topic_id == topic.id).one()

	return _quiz


@pytest.fixture
def answers():
	"""Factory: a submission with the first ``correct`` questions right and the rest wrong."""

	def _answers(correct=4):
		return [
			SubmittedAnswer(**(right if i < correct else wrong))
			for i, (right, wrong) in enumerate(zip(ALL_CORRECT, ALL_WRONG))
		]

	return _answers


@pytest.fixture
def quiz_questions():
	return [dict(q) for q in QUESTIONS]
