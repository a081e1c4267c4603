# forms.py
from flask_wtf import FlaskForm
from flask_wtf.file import FileField, FileRequired, FileAllowed
from wtforms import StringField, PasswordField, SubmitField, SelectField, IntegerField, DateField
from wtforms.validators import DataRequired, Length, Optional

from config import Config


class LoginForm(FlaskForm):
    email = StringField("Email", validators=[DataRequired(), Length(min=3, max=255)])
    password = PasswordField("Password", validators=[DataRequired()])
    submit = SubmitField("Log in")


# --- Workbook upload ---

class UploadScoresForm(FlaskForm):
    file = FileField(
        "Weekly scores workbook (.xlsx)",
        validators=[
            FileRequired(),
            FileAllowed(list(Config.UPLOAD_EXTENSIONS), "Please upload an Excel (.xlsx) file."),
        ],
    )
    submit = SubmitField("Upload")


# --- Dashboard filters (query string, no CSRF) ---

class DashboardFilterForm(FlaskForm):
    class Meta:
        csrf = False

    subject = SelectField(
        "Subject",
        choices=[("", "All"), ("MATH", "Math"), ("READING", "Reading")],
        validators=[Optional()],
        default="",
    )
    grade = IntegerField("Grade level", validators=[Optional()])
    classroom = IntegerField("Classroom", validators=[Optional()])
    week = DateField("Week", format="%Y-%m-%d", validators=[Optional()])
