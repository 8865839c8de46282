"""Error taxonomy for the quiz engine.

Every failure a caller can act on is a ``QuizError`` carrying a stable
``code`` and the HTTP status the blueprint answers with.
"""

from typing import Any, Dict, Optional


class QuizError(Exception):
    code = 'quiz_error'
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {'error': self.message, 'code': self.code}
        if self.details:
            payload['details'] = self.details
        return payload


# --- validation ---

class QuizValidationError(QuizError):
    code = 'validation_error'
    status_code = 400


class InvalidPhase(QuizValidationError):
    code = 'invalid_phase'


class UnsupportedLocale(QuizValidationError):
    code = 'unsupported_locale'


class InvalidOption(QuizValidationError):
    code = 'invalid_option'


class InvalidTimeUsed(QuizValidationError):
    code = 'invalid_time_used'


class InvalidFinishReason(QuizValidationError):
    code = 'invalid_finish_reason'


# --- lookup ---

class SessionNotFound(QuizError):
    code = 'session_not_found'
    status_code = 404


# --- state ---

class SessionStateError(QuizError):
    code = 'invalid_session_state'
    status_code = 409


class SessionNotActive(SessionStateError):
    code = 'session_not_active'


class SessionNotPaused(SessionStateError):
    code = 'session_not_paused'


class NoMoreQuestions(SessionStateError):
    code = 'no_more_questions'


class SessionExpired(SessionNotActive):
    code = 'session_expired'
    status_code = 410


# --- resources ---

class InsufficientQuestionPool(QuizError):
    code = 'insufficient_question_pool'
    status_code = 503
