"""Roadmaps, quizzes and mentor replies from the LLM, with deterministic fallbacks.

Model output is never trusted as-is: day counts are clamped, roadmap days are
renumbered, quiz points are rebalanced to 100, and anything unusable is
replaced by a template so plan creation still succeeds without the LLM.
"""
from __future__ import annotations
import json
import logging
import math
import re
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .gemini_client import GeminiClient, LLMUnavailable
from .models import LearningMaterial, LearningPlan, Quiz, Topic, TOPIC_LOCKED, TOPIC_UNLOCKED
from .settings import settings


logger = logging.getLogger(__name__)

QUIZ_TYPES = ("practice", "assessment", "review", "adaptive")
DIFFICULTIES = ("easy", "medium", "hard", "adaptive")


class TextGenerator(Protocol):
	async def generate(
		self,
		prompt: str,
		*,
		system: Optional[str] = None,
		temperature: Optional[float] = None,
		max_tokens: Optional[int] = None,
		json_output: bool = False,
	) -> str: ...


class RoadmapDay(BaseModel):
	day_index: int
	title: str
	description: str = ""
	content: str = ""
	goals: List[str] = Field(default_factory=list)
	time_estimate: int = 60
	key_points: List[str] = Field(default_factory=list)


class QuizRequest(BaseModel):
	topic_id: str
	quiz_type: str = Field(default="practice", pattern="^(practice|assessment|review|adaptive)$")
	difficulty: str = Field(default="medium", pattern="^(easy|medium|hard|adaptive)$")
	question_count: Optional[int] = Field(default=None, ge=1, le=20)
	focus_areas: List[str] = Field(default_factory=list)
	time_limit: Optional[int] = Field(default=None, ge=1)


class QuizConfig(BaseModel):
	quiz_type: str = "practice"
	difficulty: str = "medium"
	question_count: int = 5
	passing_score: int = 70
	time_limit: int = 300
	focus_areas: List[str] = Field(default_factory=list)
	adaptive_mode: bool = False
	average_score: float = 0
	attempts: int = 0
	needs_review: bool = False


class GeneratedQuiz(BaseModel):
	title: str
	description: str = ""
	passing_score: int = 70
	questions: List[Dict[str, Any]]


def extract_json_object(text: str) -> Dict[str, Any]:
	"""First JSON object in an LLM reply: raw, inside a ```json fence, or embedded in prose."""
	try:
		data = json.loads(text)
		if isinstance(data, dict):
			return data
	except ValueError:
		pass

	code_block = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
	if code_block:
		try:
			data = json.loads(code_block.group(1))
			if isinstance(data, dict):
				return data
		except ValueError:
			pass

	first = text.find("{")
	last = text.rfind("}")
	if first != -1 and last > first:
		try:
			data = json.loads(text[first : last + 1])
			if isinstance(data, dict):
				return data
		except ValueError:
			pass
	raise ValueError("LLM did not return a JSON object")


def clamp_days(value: Any) -> int:
	try:
		days = int(value)
	except (TypeError, ValueError):
		return settings.default_plan_days
	return min(max(days, settings.plan_min_days), settings.plan_max_days)


def normalize_quiz_points(questions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
	"""Spread 100 points evenly when the given points are missing or do not sum to 100.

	The last question absorbs the remainder of the integer split.
	"""
	if not questions:
		return []
	given = [q.get("points") for q in questions]
	if all(isinstance(p, int) and not isinstance(p, bool) and p >= 0 for p in given) and sum(given) == 100:
		return [dict(q) for q in questions]
	share = 100 // len(questions)
	out = []
	for index, q in enumerate(questions):
		points = 100 - share * (len(questions) - 1) if index == len(questions) - 1 else share
		out.append({**q, "points": points})
	return out


def quiz_configuration(request: QuizRequest, previous_scores: List[int]) -> QuizConfig:
	"""Quiz shape for a topic from the requested type and the learner's earlier scores on it."""
	average = sum(previous_scores) / len(previous_scores) if previous_scores else 0

	difficulty = request.difficulty
	if difficulty == "adaptive":
		if average >= 85:
			difficulty = "hard"
		elif average >= 70:
			difficulty = "medium"
		else:
			difficulty = "easy"

	count = request.question_count or 5
	passing = settings.default_passing_score
	if request.quiz_type == "practice":
		count = min(count, 3)
		passing = 60
	elif request.quiz_type == "assessment":
		count = max(count, 8)
		passing = 80

	time_limit = request.time_limit or count * 60
	if request.quiz_type == "practice":
		time_limit = math.floor(time_limit * 1.5)

	focus = list(request.focus_areas)
	if not focus and previous_scores:
		if average < 60:
			focus = ["fundamental concepts"]
		elif average < 80:
			focus = ["application of concepts"]

	return QuizConfig(
		quiz_type=request.quiz_type,
		difficulty=difficulty,
		question_count=count,
		passing_score=passing,
		time_limit=time_limit,
		focus_areas=focus,
		adaptive_mode=request.difficulty == "adaptive",
		average_score=average,
		attempts=len(previous_scores),
		needs_review=bool(previous_scores) and average < 70,
	)


def template_roadmap(title: str, days: int) -> List[RoadmapDay]:
	"""Introduction, core concepts, practice, then mastery, scaled to ``days``."""
	core_until = math.ceil(days * 0.3)
	practice_until = math.ceil(days * 0.7)
	roadmap: List[RoadmapDay] = []
	for day in range(1, days + 1):
		if day == 1:
			topic_title = f"Introduction to {title}"
			description = "Foundation concepts and overview"
			goals = ["Understand basic concepts", "Identify key principles", "Prepare for advanced topics"]
			points = ["Foundation knowledge", "Core terminology", "Basic principles"]
		elif day <= core_until:
			topic_title = f"Core Concepts of {title} - Part {day - 1}"
			description = "Deep dive into fundamental principles"
			goals = ["Master fundamental principles", "Apply concepts to examples", "Build strong foundation"]
			points = ["Advanced theory", "Practical examples", "Problem-solving techniques"]
		elif day <= practice_until:
			topic_title = f"Practical Applications - Day {day}"
			description = "Hands-on practice and real-world applications"
			goals = ["Apply knowledge practically", "Solve real problems", "Develop practical skills"]
			points = ["Hands-on exercises", "Case studies", "Project work"]
		else:
			topic_title = f"Advanced Mastery - Day {day}"
			description = "Advanced techniques and mastery"
			goals = ["Achieve mastery level", "Handle complex scenarios", "Integrate all concepts"]
			points = ["Expert techniques", "Complex problem solving", "Integration and synthesis"]
		content = "\n".join(
			[f"# {topic_title}", "", description, "", "## Learning Objectives"]
			+ [f"- {g}" for g in goals]
			+ ["", "## Key Points"]
			+ [f"- {p}" for p in points]
		)
		roadmap.append(
			RoadmapDay(
				day_index=day,
				title=topic_title,
				description=description,
				content=content,
				goals=goals,
				time_estimate=45 if day == 1 else 60,
				key_points=points,
			)
		)
	return roadmap


_TEMPLATE_QUESTIONS = (
	{
		"type": "multiple_choice",
		"question": "What is the main focus of {title}?",
		"options": ["Basic concepts", "Advanced theory", "Practical application", "All of the above"],
		"correctAnswer": 3,
		"explanation": "This topic covers multiple aspects of the subject.",
	},
	{
		"type": "multiple_choice",
		"question": "Which approach is most effective for learning this topic?",
		"options": ["Memorization only", "Understanding and practice", "Speed reading", "Passive listening"],
		"correctAnswer": 1,
		"explanation": "Understanding combined with practice leads to mastery.",
	},
	{
		"type": "true_false",
		"question": "Reviewing earlier days helps when later material builds on {title}.",
		"options": ["True", "False"],
		"correctAnswer": 0,
		"explanation": "Later topics rely on the foundations laid here.",
	},
	{
		"type": "multiple_choice",
		"question": "What should you do after finishing the reading for {title}?",
		"options": ["Skip the quiz", "Test yourself with the quiz", "Start the last day", "Nothing"],
		"correctAnswer": 1,
		"explanation": "The quiz confirms you are ready for the next day.",
	},
)


def template_quiz(title: str, config: Optional[QuizConfig] = None) -> GeneratedQuiz:
	config = config or QuizConfig()
	questions = []
	for index in range(config.question_count):
		base = _TEMPLATE_QUESTIONS[index % len(_TEMPLATE_QUESTIONS)]
		questions.append({
			**base,
			"id": index + 1,
			"question": base["question"].format(title=title),
			"difficulty": config.difficulty,
			"category": "general",
		})
	return GeneratedQuiz(
		title=f"{title} - Mastery Quiz",
		description=f"Test your understanding of {title.lower()}",
		passing_score=config.passing_score,
		questions=normalize_quiz_points(questions),
	)


def _clean_questions(raw: Any, config: QuizConfig) -> List[Dict[str, Any]]:
	if not isinstance(raw, list):
		return []
	kept = [
		q for q in raw
		if isinstance(q, dict) and str(q.get("question") or "").strip() and q.get("correctAnswer") is not None
	]
	# Answers are matched on str(id), so ids must be unique in that form
	given = [q.get("id") for q in kept]
	counts: Dict[str, int] = {}
	for qid in given:
		if qid is not None and qid != "":
			counts[str(qid)] = counts.get(str(qid), 0) + 1
	unique = {key for key, n in counts.items() if n == 1}
	taken = set(unique)
	questions = []
	for index, q in enumerate(kept):
		qid = given[index]
		if qid is None or qid == "" or str(qid) not in unique:
			qid = index + 1
			while str(qid) in taken:
				qid += 1
			taken.add(str(qid))
		questions.append({
			"id": qid,
			"type": q.get("type") or "multiple_choice",
			"question": str(q["question"]).strip(),
			"options": q.get("options") or [],
			"correctAnswer": q["correctAnswer"],
			"explanation": q.get("explanation") or "Correct answer explanation",
			"points": q.get("points"),
			"difficulty": q.get("difficulty") or config.difficulty,
			"category": q.get("category") or "general",
		})
	return questions


def _clean_roadmap(raw: Any) -> List[RoadmapDay]:
	if not isinstance(raw, list):
		return []
	entries = [d for d in raw if isinstance(d, dict) and str(d.get("title") or "").strip()]

	def order(item):
		position, entry = item
		try:
			return int(entry.get("dayIndex")), position
		except (TypeError, ValueError):
			return position + 1, position

	entries = [e for _, e in sorted(enumerate(entries), key=order)][: settings.plan_max_days]
	roadmap = []
	for day, entry in enumerate(entries, start=1):
		try:
			estimate = int(entry.get("timeEstimate") or 60)
		except (TypeError, ValueError):
			estimate = 60
		points = [str(p) for p in entry.get("keyPoints") or [] if p]
		roadmap.append(
			RoadmapDay(
				day_index=day,
				title=str(entry["title"]).strip(),
				description=str(entry.get("description") or ""),
				content=str(entry.get("content") or ". ".join(points)),
				goals=[str(g) for g in entry.get("goals") or [] if g],
				time_estimate=estimate if estimate > 0 else 60,
				key_points=points,
			)
		)
	return roadmap


class ContentGenerator:
	def __init__(self, client: Optional[TextGenerator] = None, language: str = "en") -> None:
		self.client = client
		self.language = language

	@classmethod
	def from_settings(cls, language: str = "en") -> "ContentGenerator":
		try:
			client = GeminiClient()
		except ValueError:
			logger.warning("GEMINI_API_KEY not set; content generation uses templates only")
			client = None
		return cls(client, language=language)

	async def aclose(self) -> None:
		if isinstance(self.client, GeminiClient):
			await self.client.aclose()

	def _language_note(self) -> str:
		return "Respond in French." if self.language == "fr" else "Respond in English."

	async def _ask(self, prompt: str, **kwargs: Any) -> Optional[str]:
		if self.client is None:
			return None
		try:
			return await self.client.generate(prompt, **kwargs)
		except LLMUnavailable as exc:
			logger.warning("Content generation unavailable: %s", exc)
			return None

	async def determine_optimal_days(self, title: str, description: Optional[str] = None) -> int:
		raw = await self._ask(
			f"Title: {title}\nDescription: {description or 'No description provided'}\n\n"
			"How many days would be optimal to master this content?",
			system=(
				"You are an educational expert. Analyze the content and determine the optimal number of days "
				f"(between {settings.plan_min_days}-{settings.plan_max_days}) needed to master this topic. "
				"Respond with only a number."
			),
			temperature=0.3,
			max_tokens=10,
		)
		match = re.search(r"\d+", raw or "")
		if match is None:
			return settings.default_plan_days
		return clamp_days(match.group(0))

	async def generate_roadmap(self, text: str, title: str, days: int) -> List[RoadmapDay]:
		days = clamp_days(days)
		prompt = f"""
Analyze the learning material below and create a structured {days}-day learning roadmap.
Early days cover foundations, middle days core concepts and applications, final days integration and mastery.
{self._language_note()}

Return STRICTLY JSON:
{{
  "roadmap": [
    {{"dayIndex": 1, "title": string, "description": string, "goals": [string], "timeEstimate": integer minutes, "keyPoints": [string]}}
  ]
}}

Material:
{text[:6000]}
""".strip()
		raw = await self._ask(
			prompt,
			system="You are Kumba.AI, a strict but supportive AI tutor. Always respond in valid JSON format.",
			temperature=0.7,
			max_tokens=2000,
			json_output=True,
		)
		if raw is not None:
			try:
				roadmap = _clean_roadmap(extract_json_object(raw).get("roadmap"))
			except ValueError:
				logger.warning("Roadmap reply was not JSON; using template")
				roadmap = []
			if len(roadmap) >= settings.plan_min_days:
				return roadmap
			logger.warning("Roadmap reply had %d usable days; using template", len(roadmap))
		return template_roadmap(title, days)

	async def generate_quiz(self, title: str, content: str, config: Optional[QuizConfig] = None) -> GeneratedQuiz:
		config = config or QuizConfig(passing_score=settings.default_passing_score)
		prompt = f"""
Create an educational quiz based on this content. Configuration:
- Type: {config.quiz_type}
- Difficulty: {config.difficulty}
- Question count: {config.question_count}
- Passing score: {config.passing_score}%
- Focus areas: {', '.join(config.focus_areas) or 'General'}
{self._language_note()}

Return STRICTLY JSON:
{{
  "title": string,
  "description": string,
  "questions": [
    {{"id": 1, "type": "multiple_choice", "question": string, "options": [string], "correctAnswer": integer index or string, "explanation": string, "points": integer}}
  ]
}}

Topic: {title}
Topic content: {content[:2000]}
""".strip()
		raw = await self._ask(
			prompt,
			system="You are an expert educational quiz creator. Create engaging and pedagogical questions.",
			temperature=0.8,
			max_tokens=2000,
			json_output=True,
		)
		if raw is not None:
			try:
				data = extract_json_object(raw)
			except ValueError:
				logger.warning("Quiz reply was not JSON; using template")
				data = {}
			questions = _clean_questions(data.get("questions"), config)
			if questions:
				return GeneratedQuiz(
					title=str(data.get("title") or f"{title} - Mastery Quiz"),
					description=str(data.get("description") or ""),
					passing_score=config.passing_score,
					questions=normalize_quiz_points(questions),
				)
		return template_quiz(title, config)

	async def mentor_reply(self, message: str, context: Dict[str, Any]) -> str:
		current = context.get("current_topic") or {}
		system = f"""
You are Kumba.AI, a strict but caring AI mentor for African students. You encourage discipline and sequential learning.

Student context:
- Overall progress: {context.get('overall_progress', 0):.1f}%
- Topics completed: {context.get('completed_topics', 0)}/{context.get('total_topics', 0)}
- Average quiz score: {context.get('average_quiz_score', 0):.1f}%
- Learning streak: {context.get('learning_streak', 0)} days
- Current topic: {current.get('title') or 'None'}
- Struggling areas: {', '.join(context.get('struggling_areas') or []) or 'None identified'}

Respond in an encouraging but firm manner. Give practical, actionable advice. Use African proverbs when appropriate.
{self._language_note()}
""".strip()
		raw = await self._ask(message, system=system, temperature=0.8, max_tokens=500)
		if raw and raw.strip():
			return raw.strip()
		if self.language == "fr":
			return "Je rencontre des difficultés techniques. Veuillez réessayer dans un moment."
		return "I'm experiencing technical difficulties. Please try again in a moment."


async def create_learning_plan(
	db: Session,
	user_id: str,
	material: LearningMaterial,
	generator: ContentGenerator,
	days: Optional[int] = None,
) -> LearningPlan:
	"""Persist a plan for ``material``: one topic per roadmap day, each with a quiz. Day 1 starts unlocked."""
	if days is None:
		days = await generator.determine_optimal_days(material.title, material.description)
	days = clamp_days(days)
	roadmap = await generator.generate_roadmap(material.extracted_text or "", material.title, days)
	quizzes = [await generator.generate_quiz(day.title, day.content) for day in roadmap]

	try:
		plan = LearningPlan(
			user_id=user_id,
			learning_material_id=material.id,
			title=f"Master {material.title} in {len(roadmap)} Days",
			description=f"A comprehensive {len(roadmap)}-day learning plan for {material.title}",
			total_days=len(roadmap),
		)
		db.add(plan)
		db.flush()
		for day, quiz in zip(roadmap, quizzes):
			topic = Topic(
				learning_plan_id=plan.id,
				day_index=day.day_index,
				title=day.title,
				description=day.description,
				content=day.content,
				goals=day.goals,
				time_estimate=day.time_estimate,
				status=TOPIC_UNLOCKED if day.day_index == 1 else TOPIC_LOCKED,
			)
			db.add(topic)
			db.flush()
			db.add(
				Quiz(
					topic_id=topic.id,
					title=quiz.title,
					description=quiz.description,
					questions=quiz.questions,
					passing_score=quiz.passing_score,
				)
			)
		db.commit()
	except Exception:
		db.rollback()
		logger.exception("Failed to store learning plan for material %s", material.id)
		raise
	db.refresh(plan)
	logger.info("Created %d-day plan %s for %s", plan.total_days, plan.id, user_id)
	return plan
