# dashboard.py
from sqlalchemy import func

from models import db, Assessment, Classroom, GradeLevel, Score, Student, UploadAudit, WeeklyAggregate
from scoring import calculate_tier, subject_display, tier_percentages


def _filter_aggregates(q, subject=None, grade_level_id=None, classroom_ids=None):
    if subject:
        q = q.filter(WeeklyAggregate.subject == subject)
    if grade_level_id:
        q = q.filter(WeeklyAggregate.grade_level_id == grade_level_id)
    if classroom_ids is not None:
        q = q.filter(WeeklyAggregate.classroom_id.in_(classroom_ids))
    return q


def _summed_counts():
    return (
        func.coalesce(func.sum(WeeklyAggregate.green_count), 0),
        func.coalesce(func.sum(WeeklyAggregate.orange_count), 0),
        func.coalesce(func.sum(WeeklyAggregate.red_count), 0),
        func.coalesce(func.sum(WeeklyAggregate.gray_count), 0),
        func.coalesce(func.sum(WeeklyAggregate.total), 0),
    )


def _payload(green, orange, red, gray, total):
    counts = {"green": int(green), "orange": int(orange), "red": int(red), "gray": int(gray)}
    return {"counts": counts, "total": int(total), "pct": tier_percentages(counts, int(total))}


def latest_week(subject=None, grade_level_id=None, classroom_ids=None):
    q = _filter_aggregates(db.session.query(func.max(WeeklyAggregate.week_start)),
                           subject, grade_level_id, classroom_ids)
    # a group whose scores were all removed keeps an all-zero row
    return q.filter(WeeklyAggregate.total > 0).scalar()


def tier_distribution(subject=None, grade_level_id=None, classroom_ids=None, week_start=None):
    """Summed tier counts for one week (latest with data when week_start is None)."""
    if week_start is None:
        week_start = latest_week(subject, grade_level_id, classroom_ids)
    if week_start is None:
        out = _payload(0, 0, 0, 0, 0)
        out["week_start"] = None
        return out

    q = _filter_aggregates(db.session.query(*_summed_counts()), subject, grade_level_id, classroom_ids)
    row = q.filter(WeeklyAggregate.week_start == week_start).one()
    out = _payload(*row)
    out["week_start"] = week_start.isoformat()
    return out


def weekly_trend(subject=None, grade_level_id=None, classroom_ids=None):
    q = _filter_aggregates(
        db.session.query(WeeklyAggregate.week_start, *_summed_counts()),
        subject, grade_level_id, classroom_ids,
    )
    rows = q.group_by(WeeklyAggregate.week_start).order_by(WeeklyAggregate.week_start.asc()).all()

    avg_q = (db.session.query(Assessment.week_start, func.avg(Score.raw_score))
             .join(Score, Score.assessment_id == Assessment.id)
             .join(Classroom, Classroom.id == Assessment.classroom_id))
    if subject:
        avg_q = avg_q.filter(Assessment.subject == subject)
    if grade_level_id:
        avg_q = avg_q.filter(Classroom.grade_level_id == grade_level_id)
    if classroom_ids is not None:
        avg_q = avg_q.filter(Assessment.classroom_id.in_(classroom_ids))
    averages = {week: avg for week, avg in avg_q.group_by(Assessment.week_start).all()}

    points = []
    for week, *counts in rows:
        point = _payload(*counts)
        point["week_start"] = week.isoformat()
        avg = averages.get(week)
        point["average_score"] = round(float(avg), 1) if avg is not None else None
        points.append(point)
    return points


def classroom_rollup(week_start, subject=None, classroom_ids=None, grade_level_id=None):
    q = (db.session.query(Classroom.id, Classroom.code, GradeLevel.name, *_summed_counts())
         .join(WeeklyAggregate, WeeklyAggregate.classroom_id == Classroom.id)
         .join(GradeLevel, GradeLevel.id == WeeklyAggregate.grade_level_id)
         .filter(WeeklyAggregate.week_start == week_start))
    q = _filter_aggregates(q, subject, grade_level_id, classroom_ids)
    rows = (q.group_by(Classroom.id, Classroom.code, GradeLevel.name)
            .order_by(Classroom.code.asc())
            .all())

    out = []
    for classroom_id, code, grade_name, *counts in rows:
        item = _payload(*counts)
        item.update({"classroom_id": classroom_id, "classroom": code, "grade": grade_name})
        out.append(item)
    return out


def classroom_students(classroom_id, week_start=None, subject=None, thresholds=None):
    """Each student's scores in one classroom for a week, keyed by subject, plus an overall tier.

    The overall score is the mean of the subject scores present. Defaults to the
    latest week the classroom has data for.
    """
    if week_start is None:
        week_start = latest_week(subject, None, [classroom_id])
    if week_start is None:
        return {"week_start": None, "students": []}

    q = (db.session.query(Student.id, Student.full_name, Student.external_id,
                          Assessment.subject, Score.raw_score, Score.tier)
         .join(Score, Score.student_id == Student.id)
         .join(Assessment, Assessment.id == Score.assessment_id)
         .filter(Assessment.classroom_id == classroom_id, Assessment.week_start == week_start))
    if subject:
        q = q.filter(Assessment.subject == subject)
    rows = q.order_by(Student.full_name.asc(), Student.id.asc(), Assessment.subject.asc()).all()

    by_student = {}
    for student_id, name, external_id, subj, raw_score, tier in rows:
        item = by_student.setdefault(student_id, {
            "student_id": student_id,
            "name": name,
            "external_id": external_id,
            "scores": {},
        })
        item["scores"][subj.lower()] = {"score": raw_score, "tier": tier}

    students = []
    for item in by_student.values():
        values = [s["score"] for s in item["scores"].values()]
        overall = sum(values) / len(values)
        item["overall_score"] = round(overall, 1)
        item["overall_tier"] = calculate_tier(overall, thresholds)
        students.append(item)
    return {"week_start": week_start.isoformat(), "students": students}


def student_history(student_id: int):
    rows = (db.session.query(Assessment.week_start, Assessment.subject, Classroom.code, Score.raw_score, Score.tier)
            .join(Score, Score.assessment_id == Assessment.id)
            .join(Classroom, Classroom.id == Assessment.classroom_id)
            .filter(Score.student_id == student_id)
            .order_by(Assessment.week_start.asc(), Assessment.subject.asc())
            .all())
    return [
        {
            "week_start": week.isoformat(),
            "subject": subject,
            "subject_label": subject_display(subject),
            "classroom": code,
            "score": raw_score,
            "tier": tier,
        }
        for week, subject, code, raw_score, tier in rows
    ]


def recent_uploads(user_id=None, limit=20):
    q = UploadAudit.query
    if user_id is not None:
        q = q.filter(UploadAudit.user_id == user_id)
    audits = q.order_by(UploadAudit.created_at.desc(), UploadAudit.id.desc()).limit(limit).all()
    return [
        {
            "id": a.id,
            "file_name": a.file_name,
            "file_size": a.file_size,
            "record_count": a.record_count,
            "processed_count": a.processed_count,
            "status": a.status,
            "errors": a.error_log.split("\n") if a.error_log else [],
            "created_at": a.created_at.isoformat() if a.created_at else None,
        }
        for a in audits
    ]
