"""SQLAlchemy models: student directory, quizzes and scan results."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True)
    external_id = Column(String(64), unique=True, nullable=False, index=True)
    first_name = Column(String(100), default="")
    last_name = Column(String(100), default="")
    level = Column(String(50), default="")
    section = Column(String(50), default="")

    results = relationship("QuizResult", back_populates="student")

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def __repr__(self):
        return f"<Student {self.external_id} {self.full_name}>"


class Quiz(Base):
    __tablename__ = "quizzes"

    id = Column(String(64), primary_key=True)
    title = Column(String(200), default="")
    subject = Column(String(100), default="")
    total_questions = Column(Integer, nullable=False)
    max_score = Column(Float, default=0)
    correct_answers = Column(JSON, default=list)
    question_points = Column(JSON, default=list)

    results = relationship("QuizResult", back_populates="quiz")

    def __repr__(self):
        return f"<Quiz {self.id} ({self.total_questions} questions)>"


class QuizResult(Base):
    __tablename__ = "quiz_results"

    id = Column(Integer, primary_key=True)
    quiz_id = Column(String(64), ForeignKey("quizzes.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    external_id = Column(String(64), nullable=False)
    student_name = Column(String(200), default="")
    score = Column(Float, default=0)
    percentage = Column(Integer, default=0)
    answers = Column(JSON, default=list)
    correct_answers = Column(Integer, default=0)
    wrong_answers = Column(Integer, default=0)
    verified = Column(Boolean, default=False)
    confidence = Column(Float, default=0)
    strategy = Column(String(20), default="")
    scanned_at = Column(DateTime, default=datetime.utcnow)

    quiz = relationship("Quiz", back_populates="results")
    student = relationship("Student", back_populates="results")

    def __repr__(self):
        return f"<QuizResult {self.quiz_id} {self.external_id} {self.percentage}%>"
