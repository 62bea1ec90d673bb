"""Structured failures raised by the learning core.

Each error is an ``HTTPException`` so routers let it propagate untouched; the
response body carries a machine-checkable ``kind`` next to the human message.
"""
from __future__ import annotations
from typing import Any, Dict, Optional

from fastapi import HTTPException


class LearningError(HTTPException):
	kind: str = "LearningError"
	status_code_default: int = 400
	default_message: str = "Request could not be completed"

	def __init__(self, message: Optional[str] = None, **extra: Any) -> None:
		self.message = message or self.default_message
		self.extra: Dict[str, Any] = extra
		detail: Dict[str, Any] = {"kind": self.kind, "message": self.message}
		detail.update(extra)
		super().__init__(status_code=self.status_code_default, detail=detail)

	def __str__(self) -> str:
		return f"{self.kind}: {self.message}"


class TopicLocked(LearningError):
	kind = "TopicLocked"
	status_code_default = 403
	default_message = "This topic is locked. Complete previous topics first."


class PlanNotOwned(LearningError):
	kind = "PlanNotOwned"
	status_code_default = 403
	default_message = "Access denied"


class QuizNotPassed(LearningError):
	kind = "QuizNotPassed"
	status_code_default = 403
	default_message = "You must pass the quiz before completing this topic"


class AttemptsExceeded(LearningError):
	kind = "AttemptsExceeded"
	status_code_default = 403
	default_message = "Maximum attempts exceeded"


class TopicNotFound(LearningError):
	kind = "TopicNotFound"
	status_code_default = 404
	default_message = "Topic not found"


class QuizNotFound(LearningError):
	kind = "QuizNotFound"
	status_code_default = 404
	default_message = "Quiz not found"


class PlanNotFound(LearningError):
	kind = "PlanNotFound"
	status_code_default = 404
	default_message = "Learning plan not found"


class MaterialNotFound(LearningError):
	kind = "MaterialNotFound"
	status_code_default = 404
	default_message = "Material not found"


class NoQuizResults(LearningError):
	kind = "NoQuizResults"
	status_code_default = 404
	default_message = "No quiz results found"


class InvalidSubmission(LearningError):
	kind = "InvalidSubmission"
	status_code_default = 400
	default_message = "Invalid submission format"
