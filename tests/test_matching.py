from datetime import date

import pytest

from ingest import (
    StudentNotFoundError, ScoreRow, match_student, recompute_weekly_aggregate, upsert_assessment, upsert_score
)
from models import db, Assessment, Classroom, Score, Student, WeeklyAggregate

WEEK = date(2025, 8, 25)


def score_row(name, student_id=None, grade_label=None, score=80.0):
    return ScoreRow(
        row_number=2, week_start=WEEK, classroom_code="G3-A", subject="MATH",
        student_name=name, score=score, student_id=student_id, grade_label=grade_label,
    )


@pytest.fixture
def g3a(roster):
    return db.session.get(Classroom, roster.g3a_id)


def test_match_by_external_id(roster, g3a):
    student = match_student(score_row("Someone Else", student_id="STU001"), g3a)
    assert student.id == roster.alice_id


def test_unknown_id_falls_back_to_exact_name(roster, g3a):
    student = match_student(score_row("Bob Smith", student_id="NOPE"), g3a)
    assert student.id == roster.bob_id


def test_name_match_without_id(roster, g3a):
    assert match_student(score_row("Carla Diaz"), g3a).id == roster.carla_id


def test_id_from_another_grade_does_not_match(roster, g3a):
    with pytest.raises(StudentNotFoundError) as info:
        match_student(score_row("Dev Patel", student_id="STU004"), g3a)
    assert info.value.as_dict() == {"name": "Dev Patel", "grade": "Grade 3", "classroom": "G3-A"}


@pytest.mark.parametrize("name", ["alice johnson", "Alice Johnson ", "Alice  Johnson", "Alice"])
def test_name_match_is_exact(roster, g3a, name):
    with pytest.raises(StudentNotFoundError):
        match_student(score_row(name), g3a)


def test_ambiguous_name_is_unmatched(roster, g3a):
    db.session.add(Student(full_name="Bob Smith", grade_level_id=roster.grade3_id))
    db.session.commit()
    with pytest.raises(StudentNotFoundError):
        match_student(score_row("Bob Smith"), g3a)
    # the external id still resolves
    assert match_student(score_row("Bob Smith", student_id="STU002"), g3a).id == roster.bob_id


def test_unmatched_report_uses_row_grade_label(roster, g3a):
    with pytest.raises(StudentNotFoundError) as info:
        match_student(score_row("Zed Unknown", grade_label="3rd"), g3a)
    assert info.value.grade == "3rd"


def test_upsert_assessment_is_idempotent(roster):
    first = upsert_assessment("MATH", roster.g3a_id, WEEK)
    second = upsert_assessment("MATH", roster.g3a_id, WEEK)
    other = upsert_assessment("READING", roster.g3a_id, WEEK)
    assert first.id == second.id
    assert other.id != first.id
    assert Assessment.query.count() == 2


def test_upsert_score_overwrites(roster):
    a = upsert_assessment("MATH", roster.g3a_id, WEEK)
    upsert_score(roster.alice_id, a.id, 90.0, "GREEN")
    upsert_score(roster.alice_id, a.id, 70.0, "RED")
    db.session.commit()
    scores = Score.query.all()
    assert len(scores) == 1
    assert (scores[0].raw_score, scores[0].tier) == (70.0, "RED")


def test_recompute_counts_every_score_in_group(roster, g3a):
    a = upsert_assessment("MATH", roster.g3a_id, WEEK)
    upsert_score(roster.alice_id, a.id, 95.0, "GREEN")
    upsert_score(roster.bob_id, a.id, 80.0, "ORANGE")
    upsert_score(roster.carla_id, a.id, 50.0, "GRAY")
    # different subject, same week: not counted
    r = upsert_assessment("READING", roster.g3a_id, WEEK)
    upsert_score(roster.alice_id, r.id, 66.0, "RED")

    agg = recompute_weekly_aggregate(g3a, "MATH", WEEK)
    db.session.commit()
    assert agg.counts == {"green": 1, "orange": 1, "red": 0, "gray": 1}
    assert agg.total == 3
    assert agg.grade_level_id == roster.grade3_id

    # full replace, not a delta
    again = recompute_weekly_aggregate(g3a, "MATH", WEEK)
    assert again.id == agg.id
    assert again.total == 3
    assert WeeklyAggregate.query.count() == 1


def test_recompute_empty_group(roster, g3a):
    agg = recompute_weekly_aggregate(g3a, "READING", date(2025, 9, 1))
    assert agg.total == 0
    assert sum(agg.counts.values()) == 0
