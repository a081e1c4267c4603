import io
from types import SimpleNamespace

import pytest
from openpyxl import Workbook

from app import create_app
from config import TestConfig
from models import db, GradeLevel, Classroom, Student, User

HEADERS = ["WeekStart", "ClassroomCode", "Subject", "StudentName", "StudentID", "GradeLevel", "Score"]


def make_workbook(rows, headers=HEADERS):
    """Rows are lists in header order; returns .xlsx bytes."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Scores"
    if headers:
        ws.append(headers)
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def roster(app):
    grade3 = GradeLevel(name="Grade 3")
    grade4 = GradeLevel(name="Grade 4")

    teacher1 = User(email="teacher1@school.edu", name="Ms. Johnson", role="TEACHER")
    teacher1.set_password("password1")
    teacher2 = User(email="teacher2@school.edu", name="Mr. Smith", role="TEACHER")
    teacher2.set_password("password2")
    staff = User(email="admin@school.edu", name="Assistant Principal", role="STAFF")
    staff.set_password("admin 123!")

    db.session.add_all([grade3, grade4, teacher1, teacher2, staff])
    db.session.flush()

    g3a = Classroom(code="G3-A", grade_level_id=grade3.id, teacher_id=teacher1.id)
    g3b = Classroom(code="G3-B", grade_level_id=grade3.id, teacher_id=teacher2.id)
    g4a = Classroom(code="G4-A", grade_level_id=grade4.id)

    alice = Student(external_id="STU001", full_name="Alice Johnson", grade_level_id=grade3.id)
    bob = Student(external_id="STU002", full_name="Bob Smith", grade_level_id=grade3.id)
    carla = Student(external_id=None, full_name="Carla Diaz", grade_level_id=grade3.id)
    dev = Student(external_id="STU004", full_name="Dev Patel", grade_level_id=grade4.id)

    db.session.add_all([g3a, g3b, g4a, alice, bob, carla, dev])
    db.session.commit()

    return SimpleNamespace(
        grade3_id=grade3.id, grade4_id=grade4.id,
        teacher1_id=teacher1.id, teacher2_id=teacher2.id, staff_id=staff.id,
        g3a_id=g3a.id, g3b_id=g3b.id, g4a_id=g4a.id,
        alice_id=alice.id, bob_id=bob.id, carla_id=carla.id, dev_id=dev.id,
    )


@pytest.fixture
def login(client):
    def _login(email, password):
        resp = client.post("/login", data={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return resp
    return _login
