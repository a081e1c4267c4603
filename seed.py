# seed.py
from models import db, GradeLevel, Classroom, User, Student


DEMO_STUDENTS = [
    ("STU001", "Alice Johnson", "Grade 3"),
    ("STU002", "Bob Smith", "Grade 3"),
    ("STU003", "Carla Diaz", "Grade 3"),
    ("STU004", "Dev Patel", "Grade 4"),
    ("STU005", "Emily Chen", "Grade 4"),
    ("STU006", "Farah Khan", "Grade 5"),
]


def seed_data(reset=True):
    """Populate demo data inside the current app context. Returns a summary line."""
    if reset:
        db.drop_all()
        db.create_all()

    # Grade levels
    grades = {}
    for name in ("Grade 3", "Grade 4", "Grade 5"):
        g = GradeLevel.query.filter_by(name=name).first()
        if not g:
            g = GradeLevel(name=name)
            db.session.add(g)
        grades[name] = g
    db.session.flush()  # so grades[...].id exists

    # Users
    def get_or_create_user(email, name, role, password):
        u = User.query.filter_by(email=email).first()
        if not u:
            u = User(email=email, name=name, role=role)
            u.set_password(password)
            db.session.add(u)
        return u

    teacher1 = get_or_create_user("teacher1@school.edu", "Ms. Johnson", "TEACHER", "password1")
    teacher2 = get_or_create_user("teacher2@school.edu", "Mr. Smith", "TEACHER", "password2")
    get_or_create_user("admin@school.edu", "Assistant Principal", "STAFF", "admin 123!")
    get_or_create_user("coach@school.edu", "Instructional Coach", "LEADER", "coach 123!")
    db.session.flush()

    # Classrooms: A rooms to teacher1, B rooms to teacher2
    for n in (3, 4, 5):
        for section, teacher in (("A", teacher1), ("B", teacher2)):
            code = f"G{n}-{section}"
            if not Classroom.query.filter_by(code=code).first():
                db.session.add(Classroom(code=code, grade_level_id=grades[f"Grade {n}"].id, teacher_id=teacher.id))

    # Students
    for external_id, full_name, grade in DEMO_STUDENTS:
        if not Student.query.filter_by(external_id=external_id).first():
            db.session.add(Student(external_id=external_id, full_name=full_name, grade_level_id=grades[grade].id))

    db.session.commit()

    return (f"Seeded: {GradeLevel.query.count()} grade levels, {Classroom.query.count()} classrooms, "
            f"{User.query.count()} users, {Student.query.count()} students.")


def seed():
    from app import create_app

    app = create_app()
    with app.app_context():
        print(seed_data(reset=True))


if __name__ == "__main__":
    seed()
