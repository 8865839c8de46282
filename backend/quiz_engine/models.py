from quiz_engine import db
import json

from quiz_engine.services.quiz.types import QuizQuestion


class Question(db.Model):
    __tablename__ = 'question'
    id = db.Column(db.Integer, primary_key=True)
    locale = db.Column(db.String(8), nullable=False, index=True)
    level = db.Column(db.Integer, nullable=False, index=True)
    topic = db.Column(db.String(64), nullable=False, default='general')
    question = db.Column(db.Text, nullable=False)
    option_a = db.Column(db.Text, nullable=False)
    option_b = db.Column(db.Text, nullable=False)
    option_c = db.Column(db.Text, nullable=False)
    option_d = db.Column(db.Text, nullable=False)
    correct_option = db.Column(db.String(1), nullable=False)
    explanation = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(512), nullable=True)
    published = db.Column(db.Boolean, default=True, nullable=False)

    def to_quiz_question(self) -> QuizQuestion:
        return QuizQuestion(
            id=self.id,
            topic=self.topic or 'general',
            level=self.level,
            locale=self.locale,
            question=self.question,
            options=(self.option_a, self.option_b, self.option_c, self.option_d),
            correct_option=(self.correct_option or 'A').upper(),
            explanation=self.explanation,
            image_url=self.image_url,
        )

    def to_dict(self):
        return {
            'id': self.id,
            'locale': self.locale,
            'level': self.level,
            'topic': self.topic,
            'question': self.question,
            'published': self.published,
        }


class SessionSnapshot(db.Model):
    __tablename__ = 'session_snapshot'
    session_id = db.Column(db.String(64), primary_key=True)
    user_id = db.Column(db.String(128), nullable=True, index=True)
    status = db.Column(db.String(16), nullable=True)
    data = db.Column(db.Text, nullable=False)  # JSON-encoded session
    created_at = db.Column(db.Float, nullable=False)
    updated_at = db.Column(db.Float, nullable=False)
    expires_at = db.Column(db.Float, nullable=False, index=True)

    def snapshot(self):
        return json.loads(self.data)
