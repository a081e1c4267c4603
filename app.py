# app.py
from flask import Flask, request, jsonify, abort
from flask_migrate import Migrate
from flask_login import (
    LoginManager, login_user, login_required, current_user, logout_user
)
from sqlalchemy import func
from werkzeug.utils import secure_filename
from config import Config
from models import db, User, Classroom, Student
from forms import LoginForm, UploadScoresForm, DashboardFilterForm
from ingest import process_workbook, recompute_all_aggregates
from dashboard import (
    tier_distribution, weekly_trend, classroom_rollup, classroom_students, student_history, recent_uploads,
    latest_week,
)
from scoring import week_start_for
import click
import logging

logger = logging.getLogger(__name__)


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(level=app.config.get("LOG_LEVEL", "INFO"))

    # ---- DB & Login setup
    db.init_app(app)
    Migrate(app, db)
    login_manager = LoginManager(app)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Login required"}), 401

    # ---- Helpers

    def visible_classroom_ids(user):
        # None → every classroom (staff and leaders)
        if user.role in ("STAFF", "LEADER"):
            return None
        return user.classroom_ids

    def require_classroom_access(classroom_id):
        ids = visible_classroom_ids(current_user)
        if ids is not None and classroom_id not in ids:
            abort(403)

    def require_student_access(student):
        ids = visible_classroom_ids(current_user)
        if ids is None:
            return
        shared = (Classroom.query
                  .filter(Classroom.id.in_(ids), Classroom.grade_level_id == student.grade_level_id)
                  .first())
        if not shared:
            abort(403)

    def parse_dashboard_filters():
        """Returns (filters, None) or (None, error response)."""
        form = DashboardFilterForm(formdata=request.args)
        if not form.validate():
            return None, (jsonify({"errors": form.errors}), 400)

        classroom_ids = visible_classroom_ids(current_user)
        if form.classroom.data:
            require_classroom_access(form.classroom.data)
            classroom_ids = [form.classroom.data]

        return {
            "subject": form.subject.data or None,
            "grade_level_id": form.grade.data,
            "classroom_ids": classroom_ids,
            "week_start": week_start_for(form.week.data) if form.week.data else None,
        }, None

    def filters_echo(filters):
        return {
            "subject": filters["subject"],
            "grade": filters["grade_level_id"],
            "classrooms": filters["classroom_ids"],
            "week": filters["week_start"].isoformat() if filters["week_start"] else None,
        }

    # ---- Health

    @app.route("/health")
    def health():
        return jsonify({"ok": True})

    # ---- Auth

    @app.route("/login", methods=["POST"])
    def login():
        form = LoginForm()
        if not form.validate_on_submit():
            return jsonify({"ok": False, "errors": form.errors}), 400
        email = form.email.data.strip().lower()
        user = User.query.filter(func.lower(User.email) == email).first()
        if not user or not user.check_password(form.password.data):
            return jsonify({"ok": False, "error": "Invalid email or password"}), 401
        if not user.is_active:
            return jsonify({"ok": False, "error": "This account is disabled."}), 403
        login_user(user)
        logger.info("User %s logged in", user.email)
        return jsonify({"ok": True, "user": {"id": user.id, "name": user.name, "role": user.role}})

    @app.route("/logout")
    @login_required
    def logout():
        logout_user()
        return jsonify({"ok": True})

    # ---- Workbook upload

    @app.route("/upload/weekly-scores", methods=["POST"])
    @login_required
    def upload_weekly_scores():
        form = UploadScoresForm()
        if not form.validate_on_submit():
            return jsonify({"success": False, "errors": form.errors}), 400

        upload = form.file.data
        file_name = secure_filename(upload.filename or "") or "uploaded_file.xlsx"
        data = upload.read()

        result = process_workbook(
            data,
            user_id=current_user.id,
            file_name=file_name,
            classroom_ids=visible_classroom_ids(current_user),
        )
        status_code = 422 if result.status == "FAILED" else 200
        return jsonify(result.to_dict()), status_code

    # ---- Dashboard API

    @app.route("/api/dashboard/summary")
    @login_required
    def api_dashboard_summary():
        filters, error = parse_dashboard_filters()
        if error:
            return error
        payload = tier_distribution(**filters)
        payload["filters"] = filters_echo(filters)
        return jsonify(payload)

    @app.route("/api/dashboard/trend")
    @login_required
    def api_dashboard_trend():
        filters, error = parse_dashboard_filters()
        if error:
            return error
        points = weekly_trend(filters["subject"], filters["grade_level_id"], filters["classroom_ids"])
        return jsonify({"points": points, "filters": filters_echo(filters)})

    @app.route("/api/dashboard/classrooms")
    @login_required
    def api_dashboard_classrooms():
        filters, error = parse_dashboard_filters()
        if error:
            return error
        week = filters["week_start"] or latest_week(
            filters["subject"], filters["grade_level_id"], filters["classroom_ids"]
        )
        rows = []
        if week:
            rows = classroom_rollup(week, filters["subject"], filters["classroom_ids"], filters["grade_level_id"])
        return jsonify({
            "week_start": week.isoformat() if week else None,
            "classrooms": rows,
            "filters": filters_echo(filters),
        })

    @app.route("/api/dashboard/classrooms/<int:classroom_id>/students")
    @login_required
    def api_classroom_students(classroom_id: int):
        classroom = db.get_or_404(Classroom, classroom_id)
        require_classroom_access(classroom.id)
        filters, error = parse_dashboard_filters()
        if error:
            return error
        payload = classroom_students(
            classroom.id,
            week_start=filters["week_start"],
            subject=filters["subject"],
            thresholds=app.config.get("TIER_THRESHOLDS"),
        )
        payload["classroom"] = {
            "id": classroom.id,
            "code": classroom.code,
            "grade": classroom.grade_level.name if classroom.grade_level else None,
        }
        return jsonify(payload)

    @app.route("/api/students/<int:student_id>/scores")
    @login_required
    def api_student_scores(student_id: int):
        student = db.get_or_404(Student, student_id)
        require_student_access(student)
        return jsonify({
            "student": {
                "id": student.id,
                "name": student.full_name,
                "external_id": student.external_id,
                "grade": student.grade_level.name if student.grade_level else None,
            },
            "scores": student_history(student.id),
        })

    @app.route("/api/uploads")
    @login_required
    def api_uploads():
        try:
            limit = max(1, min(int(request.args.get("limit", 20)), 100))
        except ValueError:
            limit = 20
        user_id = current_user.id if current_user.is_teacher else None
        return jsonify({"uploads": recent_uploads(user_id=user_id, limit=limit)})

    # ---- CLI

    @app.cli.command("recompute-aggregates")
    def recompute_aggregates_command():
        """Rebuild every weekly aggregate from score records."""
        n = recompute_all_aggregates()
        click.echo(f"Rebuilt {n} weekly aggregates.")

    @app.cli.command("seed")
    @click.option("--reset/--no-reset", default=True, help="Drop and recreate all tables first.")
    def seed_command(reset):
        """Load demo grade levels, classrooms, users and students."""
        from seed import seed_data
        click.echo(seed_data(reset=reset))

    # ---- Critical: return the Flask app object
    return app


if __name__ == "__main__":
    app = create_app()
    app.run(debug=True)
