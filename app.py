import os
import csv
import io
from functools import wraps
from datetime import date, timedelta, datetime, timezone, MINYEAR, MAXYEAR
from flask import Flask, render_template, redirect, url_for, request, jsonify, flash, session, Response
from sqlalchemy.exc import SQLAlchemyError
from models import db, User, PracticeEntry, Checkin
from stats import ACTIVITY_KINDS, compute_stats, weekly_minutes, active_days, month_grid

basedir = os.path.abspath(os.path.dirname(__file__))

app = Flask(__name__)
app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "dev-secret-key-change-in-production")
app.config["SQLALCHEMY_DATABASE_URI"] = os.environ.get(
    "DATABASE_URL",
    "sqlite:///" + os.path.join(basedir, "practice_tracker.db"),
)
app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
# Server runs UTC; entries are dated in local time (default PST, UTC-8).
app.config["TZ_OFFSET_HOURS"] = float(os.environ.get("TZ_OFFSET_HOURS", -8))
app.config["COMMUNITY_LIMIT"] = int(os.environ.get("COMMUNITY_LIMIT", 20))
app.config["MAX_DAILY_MINUTES"] = int(os.environ.get("MAX_DAILY_MINUTES", 24 * 60))

db.init_app(app)

ENTRIES_DEFAULT_LIMIT = 30
ENTRIES_MAX_LIMIT = 366
USER_NAME_MAX = 80

KIND_LABELS = {"meditation": "Meditation", "prayer": "Prayer", "reading": "Reading"}


def today_local() -> date:
    """Return the current date in the configured local timezone."""
    return (datetime.now(timezone.utc) + timedelta(hours=app.config["TZ_OFFSET_HOURS"])).date()


@app.template_filter('fmt_minutes')
def fmt_minutes_filter(total_minutes):
    """Format a minute count as e.g. '1h 05m' or '45m'."""
    mins = int(total_minutes or 0)
    h, m = divmod(mins, 60)
    if h > 0:
        return f"{h}h {m:02d}m"
    return f"{m}m"


# ── Helpers ───────────────────────────────────────────────────────────────────

def current_user():
    """Return the logged-in User object, or None."""
    uid = session.get("user_id")
    if uid is None:
        return None
    return db.session.get(User, uid)


def login_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        if current_user() is None:
            flash("Please log in to continue.", "error")
            return redirect(url_for("login"))
        return f(*args, **kwargs)
    return decorated


def api_login_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        if current_user() is None:
            return jsonify({"message": "Unauthorized"}), 401
        return f(*args, **kwargs)
    return decorated


def db_failure(message):
    """Turn a database error inside an API route into a logged 500 response."""
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except SQLAlchemyError:
                db.session.rollback()
                app.logger.exception("%s (%s %s)", message, request.method, request.path)
                return jsonify({"message": message}), 500
        return decorated
    return decorator


def parse_date(value):
    """ISO 'YYYY-MM-DD' → date, or None if the value isn't a valid date."""
    try:
        return date.fromisoformat(str(value))
    except (TypeError, ValueError):
        return None


def parse_limit(default, maximum):
    limit = request.args.get("limit", type=int) or default
    return max(1, min(limit, maximum))


def _as_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _as_minutes(value):
    """Whole minutes from a form string or a JSON number; bools and fractions are rejected."""
    if isinstance(value, bool):
        raise ValueError("boolean is not a minute count")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError("fractional minutes")
        return int(value)
    if isinstance(value, (int, str)):
        return int(value)
    raise TypeError(f"unsupported minutes value {value!r}")


def parse_entry_payload(data):
    """Validate a minutes-entry payload (JSON body or form).

    Returns (values, errors). ``values`` only holds the fields present in the
    payload, keyed by column name, plus the parsed ``date``.
    """
    values, errors = {}, {}
    max_minutes = app.config["MAX_DAILY_MINUTES"]

    entry_date = parse_date(data.get("date"))
    if entry_date is None:
        errors["date"] = "A date in YYYY-MM-DD format is required."
    else:
        values["date"] = entry_date

    for kind in ACTIVITY_KINDS:
        raw = data.get(f"{kind}Minutes")
        if raw is not None and raw != "":
            try:
                minutes = _as_minutes(raw)
            except (TypeError, ValueError):
                errors[f"{kind}Minutes"] = "Minutes must be a whole number."
            else:
                if minutes < 0 or minutes > max_minutes:
                    errors[f"{kind}Minutes"] = f"Minutes must be between 0 and {max_minutes}."
                else:
                    values[f"{kind}_minutes"] = minutes
        if f"{kind}Notes" in data:
            notes = data.get(f"{kind}Notes")
            values[f"{kind}_notes"] = (str(notes).strip() or None) if notes is not None else None
    return values, errors


def parse_checkin_payload(data):
    values, errors = {}, {}
    user_name = str(data.get("userName") or "").strip()
    if not user_name:
        errors["userName"] = "A name is required."
    elif len(user_name) > USER_NAME_MAX:
        errors["userName"] = f"Names are limited to {USER_NAME_MAX} characters."
    else:
        values["user_name"] = user_name

    checkin_date = parse_date(data.get("date"))
    if checkin_date is None:
        errors["date"] = "A date in YYYY-MM-DD format is required."
    else:
        values["date"] = checkin_date

    for kind in ACTIVITY_KINDS:
        if kind in data:
            values[kind] = _as_bool(data.get(kind))
    return values, errors


def upsert_entry(user, values):
    """Create or update the user's entry for ``values['date']``."""
    entry = PracticeEntry.query.filter_by(user_id=user.id, date=values["date"]).first()
    created = entry is None
    if created:
        entry = PracticeEntry(user_id=user.id, date=values["date"])
        db.session.add(entry)
    for field, value in values.items():
        setattr(entry, field, value)
    db.session.commit()
    app.logger.info("%s practice entry for %s on %s",
                    "Created" if created else "Updated", user.username, entry.date)
    return entry


def user_entries(user):
    return PracticeEntry.query.filter_by(user_id=user.id).all()


def csv_response(rows, filename):
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerows(rows)
    return Response(
        buf.getvalue(),
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


def community_entries(day, limit):
    return (PracticeEntry.query
            .filter_by(date=day)
            .order_by(PracticeEntry.created_at.desc(), PracticeEntry.id.desc())
            .limit(limit)
            .all())


# ── Auth routes ───────────────────────────────────────────────────────────────

@app.route("/login", methods=["GET", "POST"])
def login():
    if current_user():
        return redirect(url_for("dashboard"))
    error = None
    if request.method == "POST":
        username = request.form.get("username", "").strip()
        password = request.form.get("password", "")
        user = User.query.filter_by(username=username).first()
        if user and user.check_password(password):
            session["user_id"] = user.id
            return redirect(url_for("dashboard"))
        error = "Invalid username or password."
    return render_template("login.html", error=error)


@app.route("/register", methods=["GET", "POST"])
def register():
    if current_user():
        return redirect(url_for("dashboard"))
    error = None
    if request.method == "POST":
        username = request.form.get("username", "").strip()
        password = request.form.get("password", "")
        display_name = request.form.get("display_name", "").strip() or None
        if not username or not password:
            error = "Username and password are required."
        elif len(username) > USER_NAME_MAX:
            error = f"Usernames are limited to {USER_NAME_MAX} characters."
        elif User.query.filter_by(username=username).first():
            error = "That username is already taken."
        else:
            u = User(username=username, display_name=display_name)
            u.set_password(password)
            db.session.add(u)
            db.session.commit()
            app.logger.info("Registered user %s", u.username)
            session["user_id"] = u.id
            return redirect(url_for("dashboard"))
    return render_template("register.html", error=error)


@app.route("/logout")
def logout():
    session.pop("user_id", None)
    return redirect(url_for("login"))


@app.context_processor
def inject_user():
    return {"me": current_user(), "kinds": KIND_LABELS}


# ── Pages ─────────────────────────────────────────────────────────────────────

@app.route("/")
@login_required
def dashboard():
    user = current_user()
    today = today_local()
    selected = parse_date(request.args.get("date")) or today
    entries = user_entries(user)
    stats = compute_stats(entries, today)
    entry = next((e for e in entries if e.date == selected), None)
    recent = sorted(entries, key=lambda e: e.date, reverse=True)[:7]
    week = weekly_minutes(entries, today)
    week_max = max([amount for _, amount in week] + [1])
    return render_template(
        "dashboard.html",
        stats=stats,
        entry=entry,
        selected=selected,
        today=today,
        week=week,
        week_max=week_max,
        recent_entries=recent,
    )


@app.route("/log", methods=["POST"])
@login_required
def log_practice():
    user = current_user()
    values, errors = parse_entry_payload(request.form)
    if errors:
        for message in errors.values():
            flash(message, "error")
        return redirect(url_for("dashboard", date=request.form.get("date")))
    upsert_entry(user, values)
    flash("Practice saved.", "success")
    return redirect(url_for("dashboard", date=values["date"].isoformat()))


@app.route("/calendar")
@login_required
def calendar():
    user = current_user()
    today = today_local()
    month_arg = request.args.get("month", "")
    try:
        year, month = (int(p) for p in month_arg.split("-"))
        # the grid and prev/next links reach into the neighbouring months
        if not MINYEAR < year < MAXYEAR:
            raise ValueError(f"year {year} out of range")
        date(year, month, 1)
    except ValueError:
        year, month = today.year, today.month
    entries = user_entries(user)
    first = date(year, month, 1)
    prev_month = (first - timedelta(days=1)).strftime("%Y-%m")
    next_month = (first + timedelta(days=32)).strftime("%Y-%m")
    return render_template(
        "calendar.html",
        month_start=first,
        weeks=month_grid(year, month),
        active=active_days(entries, year, month),
        today=today,
        prev_month=prev_month,
        next_month=next_month,
    )


@app.route("/community")
@login_required
def community():
    day = parse_date(request.args.get("date")) or today_local()
    entries = community_entries(day, app.config["COMMUNITY_LIMIT"])
    return render_template("community.html", day=day, entries=entries)


# ── Practice entry API ────────────────────────────────────────────────────────

@app.route("/api/practice-entries", methods=["GET"])
@api_login_required
@db_failure("Failed to fetch practice entries")
def list_practice_entries():
    user = current_user()
    limit = parse_limit(ENTRIES_DEFAULT_LIMIT, ENTRIES_MAX_LIMIT)
    entries = (PracticeEntry.query
               .filter_by(user_id=user.id)
               .order_by(PracticeEntry.date.desc())
               .limit(limit)
               .all())
    return jsonify([e.to_dict() for e in entries])


@app.route("/api/practice-entries/<entry_date>", methods=["GET"])
@api_login_required
@db_failure("Failed to fetch practice entry")
def get_practice_entry(entry_date):
    day = parse_date(entry_date)
    if day is None:
        return jsonify({"message": "Invalid date"}), 400
    entry = PracticeEntry.query.filter_by(user_id=current_user().id, date=day).first()
    return jsonify(entry.to_dict() if entry else None)


@app.route("/api/practice-entries", methods=["POST"])
@api_login_required
@db_failure("Failed to save practice entry")
def save_practice_entry():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"message": "No data provided"}), 400
    values, errors = parse_entry_payload(data)
    if errors:
        return jsonify({"message": "Invalid data", "errors": errors}), 400
    entry = upsert_entry(current_user(), values)
    return jsonify(entry.to_dict())


@app.route("/api/stats")
@api_login_required
@db_failure("Failed to fetch user stats")
def user_stats():
    stats = compute_stats(user_entries(current_user()), today_local())
    return jsonify(stats.to_dict())


# ── Community ─────────────────────────────────────────────────────────────────

@app.route("/api/community/<entry_date>")
@api_login_required
@db_failure("Failed to fetch community entries")
def community_feed(entry_date):
    day = parse_date(entry_date)
    if day is None:
        return jsonify({"message": "Invalid date"}), 400
    limit = parse_limit(app.config["COMMUNITY_LIMIT"], ENTRIES_MAX_LIMIT)
    return jsonify([
        dict(e.to_dict(), userName=e.user.name)
        for e in community_entries(day, limit)
    ])


@app.route("/api/community/<entry_date>/export.csv")
@api_login_required
@db_failure("Failed to export community entries")
def community_export(entry_date):
    day = parse_date(entry_date)
    if day is None:
        return jsonify({"message": "Invalid date"}), 400
    rows = [["Name", "Meditation (min)", "Prayer (min)", "Reading (min)", "Total (min)"]]
    for e in community_entries(day, ENTRIES_MAX_LIMIT):
        rows.append([e.user.name, e.meditation_minutes or 0, e.prayer_minutes or 0,
                     e.reading_minutes or 0, e.total_minutes])
    return csv_response(rows, f"community-practice-{day.isoformat()}.csv")


@app.route("/api/community/<entry_date>/summary")
@api_login_required
@db_failure("Failed to summarize community entries")
def community_summary(entry_date):
    day = parse_date(entry_date)
    if day is None:
        return jsonify({"message": "Invalid date"}), 400
    lines = [
        f"{e.user.name}: {e.total_minutes} min total "
        f"(meditation {e.meditation_minutes or 0}min, prayer {e.prayer_minutes or 0}min, "
        f"reading {e.reading_minutes or 0}min)"
        for e in community_entries(day, ENTRIES_MAX_LIMIT)
    ]
    return Response("\n".join(lines), mimetype="text/plain")


# ── Anonymous check-ins ───────────────────────────────────────────────────────

@app.route("/api/checkins/<user_name>/<checkin_date>", methods=["GET"])
@db_failure("Failed to fetch check-in")
def get_checkin(user_name, checkin_date):
    day = parse_date(checkin_date)
    if day is None:
        return jsonify({"message": "Invalid date"}), 400
    checkin = Checkin.query.filter_by(user_name=user_name.strip(), date=day).first()
    return jsonify(checkin.to_dict() if checkin else None)


@app.route("/api/checkins", methods=["POST"])
@db_failure("Failed to save check-in")
def save_checkin():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"message": "No data provided"}), 400
    values, errors = parse_checkin_payload(data)
    if errors:
        return jsonify({"message": "Invalid data", "errors": errors}), 400
    checkin = Checkin.query.filter_by(user_name=values["user_name"], date=values["date"]).first()
    if checkin is None:
        checkin = Checkin(user_name=values["user_name"], date=values["date"])
        db.session.add(checkin)
    for field, value in values.items():
        setattr(checkin, field, value)
    db.session.commit()
    app.logger.info("Saved check-in for %s on %s", checkin.user_name, checkin.date)
    return jsonify(checkin.to_dict())


def _community_checkins(day, limit):
    return (Checkin.query
            .filter_by(date=day)
            .order_by(Checkin.created_at.desc(), Checkin.id.desc())
            .limit(limit)
            .all())


@app.route("/api/checkins/community/<checkin_date>")
@db_failure("Failed to fetch community entries")
def checkin_community(checkin_date):
    day = parse_date(checkin_date)
    if day is None:
        return jsonify({"message": "Invalid date"}), 400
    limit = parse_limit(app.config["COMMUNITY_LIMIT"], ENTRIES_MAX_LIMIT)
    return jsonify([c.to_dict() for c in _community_checkins(day, limit)])


@app.route("/api/checkins/community/<checkin_date>/export.csv")
@db_failure("Failed to export community entries")
def checkin_community_export(checkin_date):
    day = parse_date(checkin_date)
    if day is None:
        return jsonify({"message": "Invalid date"}), 400
    yes_no = lambda flag: "Yes" if flag else "No"  # noqa: E731
    rows = [["Name", "Meditation", "Prayer", "Reading"]]
    for c in _community_checkins(day, ENTRIES_MAX_LIMIT):
        rows.append([c.user_name, yes_no(c.meditation), yes_no(c.prayer), yes_no(c.reading)])
    return csv_response(rows, f"community-checkins-{day.isoformat()}.csv")


@app.route("/api/checkins/stats/<user_name>")
@db_failure("Failed to fetch user stats")
def checkin_stats(user_name):
    checkins = Checkin.query.filter_by(user_name=user_name.strip()).all()
    stats = compute_stats(checkins, today_local())
    return jsonify({
        "currentStreak": stats.current_streak,
        "bestStreak": stats.best_streak,
        "totalPractices": len(checkins),
    })


with app.app_context():
    db.create_all()

if __name__ == "__main__":
    app.run(debug=True)
