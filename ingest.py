# ingest.py
"""
Weekly score workbook ingestion.

An upload runs as one batch: read the first sheet, validate every row,
group the valid rows by (week, classroom, subject), match each row to a
student, upsert assessment + score records, then rebuild the weekly
aggregate for every group that was touched. Row problems are collected,
not raised, so the whole file is always attempted.
"""
import io
import logging
import math
import re
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from flask import current_app
from openpyxl import load_workbook
from openpyxl.utils.datetime import from_excel
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from models import db, Assessment, Classroom, Score, Student, UploadAudit, WeeklyAggregate
from scoring import TIERS, SCORE_MIN, SCORE_MAX, calculate_tier, normalize_subject, week_start_for

logger = logging.getLogger(__name__)


# ---- Errors

class IngestError(Exception):
    pass


class FileFormatError(IngestError):
    """Workbook could not be read, or holds no data rows. Aborts the batch."""


class RowValidationError(IngestError):
    def __init__(self, row_number: int, message: str):
        super().__init__(message)
        self.row_number = row_number
        self.message = message

    def __str__(self):
        return f"Row {self.row_number}: {self.message}"


class StudentNotFoundError(IngestError):
    def __init__(self, name, grade, classroom):
        super().__init__(f"No student named {name!r} in {grade} ({classroom})")
        self.name = name
        self.grade = grade
        self.classroom = classroom

    def as_dict(self):
        return {"name": self.name, "grade": self.grade, "classroom": self.classroom}


class PersistenceError(IngestError):
    pass


# ---- Rows

@dataclass(frozen=True)
class ScoreRow:
    row_number: int
    week_start: date
    classroom_code: str
    subject: str
    student_name: str
    score: float
    student_id: Optional[str] = None
    grade_label: Optional[str] = None

    @property
    def group_key(self):
        return (self.week_start, self.classroom_code, self.subject)


@dataclass
class ProcessingResult:
    success: bool = False
    processed_count: int = 0
    errors: List[str] = field(default_factory=list)
    unmatched_students: List[dict] = field(default_factory=list)
    status: str = "FAILED"

    def to_dict(self):
        return {
            "success": self.success,
            "status": self.status,
            "processedCount": self.processed_count,
            "errors": list(self.errors),
            "unmatchedStudents": list(self.unmatched_students),
        }


def normalize_header(header):
    s = re.sub(r"[\s\-]+", "_", str(header or "").strip().lower())
    return re.sub(r"[^a-z0-9_]", "", s)


COLUMN_ALIASES = {
    "week_start": ["WeekStart", "week_start", "week", "week_of", "week_beginning"],
    "classroom_code": ["ClassroomCode", "classroom_code", "classroom", "class", "class_code"],
    "subject": ["Subject"],
    "student_name": ["StudentName", "student_name", "student", "name", "full_name"],
    "student_id": ["StudentID", "student_id", "external_id", "id"],
    "grade_level": ["GradeLevel", "grade_level", "grade"],
    "score": ["Score", "raw_score"],
}
ALIAS_MAP = {
    normalize_header(alias): canonical
    for canonical, aliases in COLUMN_ALIASES.items()
    for alias in aliases
}

DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%Y/%m/%d", "%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S")


def canonical_fields(raw: dict) -> dict:
    out = {}
    for key, value in (raw or {}).items():
        canonical = ALIAS_MAP.get(normalize_header(key))
        if canonical and canonical not in out:
            out[canonical] = value
    return out


def cell_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def parse_date(value):
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        # Excel serial day number
        if not math.isfinite(value) or value < 1:
            return None
        try:
            return from_excel(value).date()
        except (ValueError, OverflowError):
            return None
    s = str(value).strip()
    if not s:
        return None
    for candidate in (s, s.split("T")[0]):
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(candidate, fmt).date()
            except ValueError:
                continue
    return None


def parse_score(value):
    """Return (score, None) or (None, message)."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None, "Score is required"
    if isinstance(value, bool):
        return None, "Score must be a number"
    if isinstance(value, (int, float)):
        score = float(value)
    else:
        try:
            score = float(str(value).strip())
        except ValueError:
            return None, "Score must be a number"
    if not math.isfinite(score):
        return None, "Score must be a number"
    if score < SCORE_MIN or score > SCORE_MAX:
        return None, "Score must be between 0 and 100"
    return score, None


def validate_row(raw: dict, row_number: int):
    """Check one spreadsheet row. Returns (ScoreRow, []) or (None, [RowValidationError, ...])."""
    fields = canonical_fields(raw)
    errors = []

    parsed_date = parse_date(fields.get("week_start"))
    if parsed_date is None:
        errors.append(RowValidationError(row_number, "WeekStart is missing or not a date"))

    classroom_code = cell_text(fields.get("classroom_code"))
    if not classroom_code:
        errors.append(RowValidationError(row_number, "ClassroomCode is required"))

    subject = normalize_subject(fields.get("subject"))
    if subject is None:
        errors.append(RowValidationError(row_number, "Subject must be Math or Reading"))

    # Names are matched verbatim, so only blank-ness is checked here.
    name = fields.get("student_name")
    name = "" if name is None else str(name)
    if not name.strip():
        errors.append(RowValidationError(row_number, "StudentName is required"))

    score, score_error = parse_score(fields.get("score"))
    if score_error:
        errors.append(RowValidationError(row_number, score_error))

    if errors:
        return None, errors

    return ScoreRow(
        row_number=row_number,
        week_start=week_start_for(parsed_date),
        classroom_code=classroom_code,
        subject=subject,
        student_name=name,
        score=score,
        student_id=cell_text(fields.get("student_id")) or None,
        grade_label=cell_text(fields.get("grade_level")) or None,
    ), []


def group_rows(rows):
    groups = {}
    for row in rows:
        groups.setdefault(row.group_key, []).append(row)
    return groups


# ---- Workbook

def _is_blank(values):
    return all(v is None or (isinstance(v, str) and not v.strip()) for v in values)


def read_workbook(data: bytes):
    """First sheet of an .xlsx as [(row_number, {header: value}), ...]; header is row 1."""
    if not data:
        raise FileFormatError("Excel file is empty")
    try:
        wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise FileFormatError(f"Could not read workbook: {exc}") from exc

    rows = []
    try:
        sheet = wb.worksheets[0]
        values_iter = sheet.iter_rows(values_only=True)
        header = next(values_iter, None)
        if header is None or _is_blank(header):
            raise FileFormatError("Excel file is empty")
        headers = [cell_text(h) for h in header]
        for row_number, values in enumerate(values_iter, start=2):
            if values is None or _is_blank(values):
                continue
            rows.append((row_number, {
                h: (values[i] if i < len(values) else None)
                for i, h in enumerate(headers) if h
            }))
    finally:
        wb.close()

    if not rows:
        raise FileFormatError("Excel file is empty")
    return rows


# ---- Store operations

def match_student(row: ScoreRow, classroom: Classroom) -> Student:
    grade_level_id = classroom.grade_level_id
    if row.student_id:
        student = Student.query.filter_by(external_id=row.student_id, grade_level_id=grade_level_id).first()
        if student:
            return student

    # An ambiguous name is left unmatched rather than guessed.
    candidates = (Student.query
                  .filter_by(full_name=row.student_name, grade_level_id=grade_level_id)
                  .limit(2)
                  .all())
    if len(candidates) == 1:
        return candidates[0]

    grade = row.grade_label or (classroom.grade_level.name if classroom.grade_level else "")
    raise StudentNotFoundError(row.student_name, grade, classroom.code)


def upsert_assessment(subject: str, classroom_id: int, week_start: date) -> Assessment:
    a = Assessment.query.filter_by(subject=subject, classroom_id=classroom_id, week_start=week_start).first()
    if not a:
        a = Assessment(subject=subject, classroom_id=classroom_id, week_start=week_start)
        db.session.add(a)
        db.session.flush()
    return a


def upsert_score(student_id: int, assessment_id: int, raw_score: float, tier: str) -> Score:
    try:
        existing = Score.query.filter_by(student_id=student_id, assessment_id=assessment_id).first()
        if not existing:
            existing = Score(student_id=student_id, assessment_id=assessment_id)
            db.session.add(existing)
        existing.raw_score = raw_score
        existing.tier = tier
        db.session.flush()
    except SQLAlchemyError as exc:
        raise PersistenceError(str(exc)) from exc
    return existing


def recompute_weekly_aggregate(classroom: Classroom, subject: str, week_start: date) -> WeeklyAggregate:
    """Recount every score for the group and overwrite its aggregate row."""
    rows = (db.session.query(Score.tier, func.count(Score.id))
            .join(Assessment, Assessment.id == Score.assessment_id)
            .filter(Assessment.classroom_id == classroom.id,
                    Assessment.subject == subject,
                    Assessment.week_start == week_start)
            .group_by(Score.tier)
            .all())
    counts = {tier: 0 for tier in TIERS}
    for tier, n in rows:
        counts[tier] = counts.get(tier, 0) + n

    agg = WeeklyAggregate.query.filter_by(
        grade_level_id=classroom.grade_level_id,
        classroom_id=classroom.id,
        subject=subject,
        week_start=week_start,
    ).first()
    if not agg:
        agg = WeeklyAggregate(
            grade_level_id=classroom.grade_level_id,
            classroom_id=classroom.id,
            subject=subject,
            week_start=week_start,
        )
        db.session.add(agg)

    agg.green_count = counts["GREEN"]
    agg.orange_count = counts["ORANGE"]
    agg.red_count = counts["RED"]
    agg.gray_count = counts["GRAY"]
    agg.total = sum(counts.values())
    db.session.flush()
    return agg


def recompute_all_aggregates() -> int:
    """Drop every aggregate and rebuild one per assessment group. Returns the group count."""
    WeeklyAggregate.query.delete()
    keys = (db.session.query(Assessment.classroom_id, Assessment.subject, Assessment.week_start)
            .distinct()
            .all())
    for classroom_id, subject, week_start in keys:
        classroom = db.session.get(Classroom, classroom_id)
        recompute_weekly_aggregate(classroom, subject, week_start)
    db.session.commit()
    logger.info("Rebuilt %d weekly aggregates", len(keys))
    return len(keys)


# ---- Batch

def _process_group(key, rows, result: ProcessingResult, thresholds, classroom_ids=None):
    week_start, classroom_code, subject = key
    classroom = Classroom.query.filter_by(code=classroom_code).first()
    if not classroom:
        result.errors.append(f"Classroom {classroom_code} not found")
        logger.warning("Skipping %d rows: classroom %s not found", len(rows), classroom_code)
        return
    if classroom_ids is not None and classroom.id not in classroom_ids:
        result.errors.append(f"Not allowed to upload scores for classroom {classroom_code}")
        logger.warning("Skipping %d rows: no write access to classroom %s", len(rows), classroom_code)
        return

    written = 0
    try:
        assessment = upsert_assessment(subject, classroom.id, week_start)
        for row in rows:
            try:
                student = match_student(row, classroom)
            except StudentNotFoundError as exc:
                result.unmatched_students.append(exc.as_dict())
                logger.debug("Unmatched row %d: %s", row.row_number, exc)
                continue

            tier = calculate_tier(row.score, thresholds)
            try:
                with db.session.begin_nested():
                    upsert_score(student.id, assessment.id, row.score, tier)
            except PersistenceError as exc:
                result.errors.append(f"Failed to process score for {row.student_name}: {exc}")
                logger.warning("Score write failed for row %d: %s", row.row_number, exc)
                continue
            written += 1

        if not written:
            # nothing changed; drop the new assessment too
            db.session.rollback()
            logger.info("%s %s week %s: no scores written", classroom_code, subject, week_start)
            return

        recompute_weekly_aggregate(classroom, subject, week_start)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        err = PersistenceError(
            f"Failed to process {classroom_code} {subject} for week {week_start.isoformat()}: {exc}"
        )
        result.errors.append(str(err))
        logger.exception("Group %s %s %s rolled back", classroom_code, subject, week_start)
        return

    result.processed_count += written
    logger.info("%s %s week %s: %d scores written", classroom_code, subject, week_start, written)


def _finish(result: ProcessingResult, user_id, file_name, file_size, valid_count):
    if result.processed_count == 0:
        result.status = "FAILED"
    elif result.errors or result.unmatched_students:
        result.status = "PARTIAL"
    else:
        result.status = "COMPLETE"

    audit = UploadAudit(
        user_id=user_id,
        file_name=file_name,
        file_size=file_size,
        record_count=valid_count,
        processed_count=result.processed_count,
        status=result.status,
        error_log="\n".join(result.errors) if result.errors else None,
    )
    try:
        db.session.add(audit)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Could not write upload audit for %s", file_name)
        result.errors.append("Failed to write upload audit record")

    result.success = result.status != "FAILED" and not result.errors
    logger.info(
        "Upload %s finished %s: %d processed, %d errors, %d unmatched",
        file_name, result.status, result.processed_count, len(result.errors), len(result.unmatched_students),
    )
    return result


def process_workbook(data: bytes, user_id=None, file_name="uploaded_file.xlsx", thresholds=None,
                     classroom_ids=None) -> ProcessingResult:
    """Run one upload end to end. classroom_ids limits which classrooms may be written (None = any)."""
    result = ProcessingResult()
    if thresholds is None:
        thresholds = current_app.config.get("TIER_THRESHOLDS")
    file_size = len(data or b"")
    logger.info("Processing upload %s (%d bytes)", file_name, file_size)

    try:
        raw_rows = read_workbook(data)
    except FileFormatError as exc:
        result.errors.append(str(exc))
        return _finish(result, user_id, file_name, file_size, 0)

    valid_rows = []
    for row_number, raw in raw_rows:
        row, problems = validate_row(raw, row_number)
        if problems:
            result.errors.extend(str(p) for p in problems)
            continue
        valid_rows.append(row)

    if not valid_rows:
        result.errors.append("No valid rows found in Excel file")
        return _finish(result, user_id, file_name, file_size, 0)

    for key, rows in group_rows(valid_rows).items():
        _process_group(key, rows, result, thresholds, classroom_ids)

    return _finish(result, user_id, file_name, file_size, len(valid_rows))
