# models.py
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()

ROLES = ("TEACHER", "STAFF", "LEADER")


# ----- Roster -----

class GradeLevel(db.Model):
    __tablename__ = "grade_levels"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(40), unique=True, nullable=False)  # "Grade 3"

    classrooms = db.relationship("Classroom", back_populates="grade_level")
    students = db.relationship("Student", back_populates="grade_level")

    def __repr__(self):
        return f"<GradeLevel {self.name}>"


class User(UserMixin, db.Model):
    __tablename__ = "users"
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    name = db.Column(db.String(120), nullable=True)
    role = db.Column(db.String(10), nullable=False, default="TEACHER")  # TEACHER | STAFF | LEADER
    password_hash = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    classrooms = db.relationship("Classroom", back_populates="teacher")

    def set_password(self, raw: str):
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        return check_password_hash(self.password_hash, raw)

    @property
    def is_teacher(self):
        return self.role == "TEACHER"

    @property
    def classroom_ids(self):
        return sorted(c.id for c in self.classrooms)


class Classroom(db.Model):
    __tablename__ = "classrooms"
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), unique=True, nullable=False)  # "G3-A"
    grade_level_id = db.Column(db.Integer, db.ForeignKey("grade_levels.id"), nullable=False, index=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    grade_level = db.relationship("GradeLevel", back_populates="classrooms")
    teacher = db.relationship("User", back_populates="classrooms")
    assessments = db.relationship("Assessment", back_populates="classroom", cascade="all, delete-orphan")


class Student(db.Model):
    __tablename__ = "students"
    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(40), unique=True, nullable=True)
    full_name = db.Column(db.String(120), nullable=False, index=True)
    grade_level_id = db.Column(db.Integer, db.ForeignKey("grade_levels.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    grade_level = db.relationship("GradeLevel", back_populates="students")
    scores = db.relationship("Score", back_populates="student", cascade="all, delete-orphan")


# ----- Weekly assessments -----

class Assessment(db.Model):
    __tablename__ = "assessments"
    id = db.Column(db.Integer, primary_key=True)
    subject = db.Column(db.String(10), nullable=False, index=True)  # MATH | READING
    classroom_id = db.Column(db.Integer, db.ForeignKey("classrooms.id"), nullable=False)
    week_start = db.Column(db.Date, nullable=False, index=True)  # always a Monday
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    classroom = db.relationship("Classroom", back_populates="assessments")
    scores = db.relationship("Score", back_populates="assessment", cascade="all, delete-orphan")

    __table_args__ = (
        db.UniqueConstraint("subject", "classroom_id", "week_start", name="uq_assessment_subject_classroom_week"),
    )


class Score(db.Model):
    __tablename__ = "scores"
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey("students.id"), nullable=False)
    assessment_id = db.Column(db.Integer, db.ForeignKey("assessments.id"), nullable=False, index=True)
    raw_score = db.Column(db.Float, nullable=False)
    tier = db.Column(db.String(10), nullable=False)  # GREEN | ORANGE | RED | GRAY
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    student = db.relationship("Student", back_populates="scores")
    assessment = db.relationship("Assessment", back_populates="scores")

    __table_args__ = (
        db.UniqueConstraint("student_id", "assessment_id", name="uq_score_student_assessment"),
    )


class WeeklyAggregate(db.Model):
    """Tier counts for one (grade, classroom, subject, week). Derived, rebuilt from scores."""
    __tablename__ = "weekly_aggregates"
    id = db.Column(db.Integer, primary_key=True)
    grade_level_id = db.Column(db.Integer, db.ForeignKey("grade_levels.id"), nullable=False)
    classroom_id = db.Column(db.Integer, db.ForeignKey("classrooms.id"), nullable=False)
    subject = db.Column(db.String(10), nullable=False)
    week_start = db.Column(db.Date, nullable=False, index=True)
    green_count = db.Column(db.Integer, nullable=False, default=0)
    orange_count = db.Column(db.Integer, nullable=False, default=0)
    red_count = db.Column(db.Integer, nullable=False, default=0)
    gray_count = db.Column(db.Integer, nullable=False, default=0)
    total = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    grade_level = db.relationship("GradeLevel")
    classroom = db.relationship("Classroom")

    __table_args__ = (
        db.UniqueConstraint(
            "grade_level_id", "classroom_id", "subject", "week_start", name="uq_weekly_aggregate_key"
        ),
    )

    @property
    def counts(self):
        return {
            "green": self.green_count,
            "orange": self.orange_count,
            "red": self.red_count,
            "gray": self.gray_count,
        }


# ----- Audit -----

class UploadAudit(db.Model):
    __tablename__ = "upload_audits"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    file_name = db.Column(db.String(255), nullable=False)
    file_size = db.Column(db.Integer, nullable=False, default=0)
    record_count = db.Column(db.Integer, nullable=False, default=0)  # valid rows
    processed_count = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(10), nullable=False)  # COMPLETE | PARTIAL | FAILED
    error_log = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    user = db.relationship("User")
