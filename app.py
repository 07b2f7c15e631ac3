# app.py

import logging
import os
import re
from datetime import datetime, date, timezone
from functools import wraps
import click
from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from sqlalchemy.exc import IntegrityError
from allocation import InsufficientCapacity, can_allocate, ensure_capacity, has_required_skill, assignment_status, hours_per_week

# --- App Initialization, Config, and Extensions ---
app = Flask(__name__)
CORS(app, origins=os.environ.get('FRONTEND_URL', '*'))
logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s:%(message)s')
app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///staffing.db')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
db = SQLAlchemy(app)
migrate = Migrate(app, db)

# --- Constants ---
EMAIL_REGEX = r'^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$'
SENIORITY_LEVELS = ('junior', 'mid', 'senior')
PROJECT_STATUSES = ('planning', 'active', 'completed')
DEFAULT_MAX_CAPACITY = 100

# --- Decorator for Error Handling ---
def api_error_handler(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try: return f(*args, **kwargs)
        except InsufficientCapacity as e:
            db.session.rollback()
            logging.warning(f"Rejected allocation in '{f.__name__}': {e}")
            return jsonify({"error": str(e), "availableCapacity": e.available_capacity}), 400
        except IntegrityError as e:
            db.session.rollback()
            logging.warning(f"Integrity error in endpoint '{f.__name__}': {e.orig}")
            return jsonify({"error": "A record with these values already exists."}), 409
        except Exception as e:
            db.session.rollback()
            logging.error(f"An error occurred in endpoint '{f.__name__}': {e}", exc_info=True)
            return jsonify({"error": "An unexpected server error occurred."}), 500
    return decorated_function

def utcnow(): return datetime.now(timezone.utc)

# --- Database Models ---
class Engineer(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    skills = db.Column(db.JSON, default=lambda: [])
    seniority = db.Column(db.String(10), default='mid', nullable=False)
    department = db.Column(db.String(60), default='Engineering', nullable=False)
    title = db.Column(db.String(120))
    maxCapacity = db.Column(db.Integer, default=DEFAULT_MAX_CAPACITY, nullable=False)
    createdAt = db.Column(db.DateTime, default=utcnow)
    def summary(self):
        return { "id": self.id, "name": self.name, "email": self.email, "skills": self.skills or [], "seniority": self.seniority, "maxCapacity": self.maxCapacity, "department": self.department, "title": self.title }
    def to_dict(self):
        return { **self.summary(), "createdAt": self.createdAt.isoformat() if self.createdAt else None }
class Project(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    startDate = db.Column(db.Date, nullable=False)
    endDate = db.Column(db.Date, nullable=False)
    requiredSkills = db.Column(db.JSON, default=lambda: [])
    teamSize = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(10), default='planning', nullable=False)
    createdAt = db.Column(db.DateTime, default=utcnow)
    def summary(self):
        return { "id": self.id, "name": self.name, "description": self.description, "status": self.status, "startDate": self.startDate.isoformat(), "endDate": self.endDate.isoformat() }
    def to_dict(self):
        return { **self.summary(), "requiredSkills": self.requiredSkills or [], "teamSize": self.teamSize, "createdAt": self.createdAt.isoformat() if self.createdAt else None }
class Assignment(db.Model):
    __table_args__ = (db.UniqueConstraint('engineer_id', 'project_id', 'role', name='uq_assignment_engineer_project_role'),)
    id = db.Column(db.Integer, primary_key=True)
    engineer_id = db.Column(db.Integer, db.ForeignKey('engineer.id'), nullable=False)
    project_id = db.Column(db.Integer, db.ForeignKey('project.id'), nullable=False)
    allocationPercentage = db.Column(db.Integer, nullable=False)
    startDate = db.Column(db.Date, nullable=False)
    endDate = db.Column(db.Date, nullable=False)
    role = db.Column(db.String(120), nullable=False)
    createdAt = db.Column(db.DateTime, default=utcnow)
    engineer = db.relationship('Engineer', backref=db.backref('assignments', lazy='dynamic'))
    project = db.relationship('Project', backref=db.backref('assignments', lazy='dynamic'))
    @property
    def status(self): return assignment_status(self.startDate, self.endDate)
    def to_dict(self):
        return { "id": self.id, "engineerId": self.engineer_id, "projectId": self.project_id, "engineer": self.engineer.summary(), "project": self.project.summary(), "allocationPercentage": self.allocationPercentage, "hoursPerWeek": hours_per_week(self.allocationPercentage), "startDate": self.startDate.isoformat(), "endDate": self.endDate.isoformat(), "role": self.role, "status": self.status, "createdAt": self.createdAt.isoformat() if self.createdAt else None }

# --- Helper Functions ---
def parse_date(value):
    """Parses 'YYYY-MM-DD'; a trailing time part (e.g. from a JS Date) is ignored."""
    if isinstance(value, date): return value
    if not isinstance(value, str): raise ValueError(f"Invalid date: {value!r}")
    return datetime.strptime(value.strip()[:10], '%Y-%m-%d').date()
def parse_int(value):
    if isinstance(value, bool) or value is None: raise ValueError(f"Invalid integer: {value!r}")
    if isinstance(value, float):
        if not value.is_integer(): raise ValueError(f"Invalid integer: {value!r}")
        return int(value)
    return int(value)
def parse_skills(value):
    if isinstance(value, str): value = value.split(',')
    if not isinstance(value, list): raise ValueError("Skills must be a list.")
    return [str(s).strip() for s in value if str(s).strip()]
def default_title(seniority, department): return f"{seniority.capitalize()} {department} Engineer"
def json_payload():
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}

def validate_engineer_payload(payload, partial=False):
    """Returns (fields, error) for an engineer create/update payload."""
    fields = {}
    for key in ('name', 'email'):
        if key in payload or not partial:
            value = payload.get(key).strip() if isinstance(payload.get(key), str) else ''
            if not value: return None, "Name and email are mandatory fields."
            fields[key] = value
    if 'email' in fields and not re.match(EMAIL_REGEX, fields['email']): return None, "Invalid email format."
    if 'seniority' in payload:
        if payload['seniority'] not in SENIORITY_LEVELS: return None, f"Seniority must be one of: {', '.join(SENIORITY_LEVELS)}."
        fields['seniority'] = payload['seniority']
    if 'maxCapacity' in payload:
        try: fields['maxCapacity'] = parse_int(payload['maxCapacity'])
        except (TypeError, ValueError): return None, "Max capacity must be an integer."
        if fields['maxCapacity'] < 0: return None, "Max capacity cannot be negative."
    if 'skills' in payload:
        try: fields['skills'] = parse_skills(payload['skills'])
        except ValueError as e: return None, str(e)
    for key in ('department', 'title'):
        if payload.get(key): fields[key] = str(payload[key]).strip()
    return fields, None

def validate_project_payload(payload, partial=False, current=None):
    """Returns (fields, error) for a project create/update payload."""
    fields = {}
    for key in ('name', 'description'):
        if key in payload or not partial:
            value = payload.get(key).strip() if isinstance(payload.get(key), str) else ''
            if not value: return None, f"Project {key} is required."
            fields[key] = value
    for key in ('startDate', 'endDate'):
        if key in payload or not partial:
            try: fields[key] = parse_date(payload.get(key))
            except ValueError: return None, "Start date and end date must be valid dates (YYYY-MM-DD)."
    start, end = fields.get('startDate', current.startDate if current else None), fields.get('endDate', current.endDate if current else None)
    if start and end and start > end: return None, "Start date must be on or before end date."
    if 'teamSize' in payload or not partial:
        try: fields['teamSize'] = parse_int(payload.get('teamSize'))
        except (TypeError, ValueError): return None, "Team size is required and must be an integer."
        if fields['teamSize'] < 1: return None, "Team size must be at least 1."
    if 'status' in payload:
        if payload['status'] not in PROJECT_STATUSES: return None, f"Status must be one of: {', '.join(PROJECT_STATUSES)}."
        fields['status'] = payload['status']
    if 'requiredSkills' in payload:
        try: fields['requiredSkills'] = parse_skills(payload['requiredSkills'])
        except ValueError as e: return None, str(e)
    return fields, None

def validate_allocation(value):
    try: allocation = parse_int(value)
    except (TypeError, ValueError): return None, "Allocation percentage must be an integer."
    if not 1 <= allocation <= 100: return None, "Allocation must be between 1% and 100%."
    return allocation, None

def find_overlapping(engineer_id, start, end):
    return Assignment.query.filter(Assignment.engineer_id == engineer_id, Assignment.startDate <= end, Assignment.endDate >= start).all()

def check_capacity(engineer, start, end, allocation, exclude_assignment_id=None):
    """Loads the engineer's overlapping assignments and raises InsufficientCapacity if allocation does not fit."""
    existing = find_overlapping(engineer.id, start, end)
    logging.info(f"Capacity check for engineer {engineer.id} ({engineer.name}) {start} to {end}: {len(existing)} overlapping assignment(s), max capacity {engineer.maxCapacity}%, requested {allocation}%")
    check = ensure_capacity(engineer.maxCapacity, existing, start, end, allocation, exclude_assignment_id=exclude_assignment_id)
    logging.info(f"Engineer {engineer.id} has {check.available_capacity}% available; allocation of {allocation}% accepted")
    return check

# --- API Endpoints: Engineers ---
@app.route("/api/engineers", methods=['GET', 'POST'])
@api_error_handler
def handle_engineers():
    if request.method == 'GET': return jsonify([e.to_dict() for e in Engineer.query.order_by(Engineer.name).all()])
    fields, error = validate_engineer_payload(json_payload())
    if error: return jsonify({"error": error}), 400
    if Engineer.query.filter(db.func.lower(Engineer.email) == fields['email'].lower()).first(): return jsonify({"error": "Engineer with that email already exists (case-insensitive)."}), 409
    fields.setdefault('seniority', 'mid')
    fields.setdefault('department', 'Engineering')
    fields.setdefault('title', default_title(fields['seniority'], fields['department']))
    engineer = Engineer(**fields)
    db.session.add(engineer)
    db.session.commit()
    logging.info(f"Engineer {engineer.id} ({engineer.name}) created.")
    return jsonify(engineer.to_dict()), 201

@app.route("/api/engineers/<int:engineer_id>", methods=['GET', 'PUT', 'DELETE'])
@api_error_handler
def handle_engineer(engineer_id):
    engineer = db.session.get(Engineer, engineer_id)
    if not engineer: return jsonify({"error": "Engineer not found"}), 404
    if request.method == 'GET': return jsonify(engineer.to_dict())
    if request.method == 'DELETE':
        Assignment.query.filter_by(engineer_id=engineer.id).delete()
        db.session.delete(engineer)
        db.session.commit()
        return jsonify({"message": f"Engineer {engineer.name} deleted."})
    fields, error = validate_engineer_payload(json_payload(), partial=True)
    if error: return jsonify({"error": error}), 400
    if 'email' in fields and Engineer.query.filter(db.func.lower(Engineer.email) == fields['email'].lower(), Engineer.id != engineer.id).first():
        return jsonify({"error": "Engineer with that email already exists (case-insensitive)."}), 409
    for key, value in fields.items(): setattr(engineer, key, value)
    db.session.commit()
    return jsonify(engineer.to_dict())

@app.route("/api/engineers/<int:engineer_id>/capacity", methods=['GET'])
@api_error_handler
def engineer_capacity(engineer_id):
    engineer = db.session.get(Engineer, engineer_id)
    if not engineer: return jsonify({"error": "Engineer not found"}), 404
    try:
        start = parse_date(request.args.get('startDate') or request.args.get('date') or date.today().isoformat())
        end = parse_date(request.args.get('endDate')) if request.args.get('endDate') else start
    except ValueError: return jsonify({"error": "Invalid date format, expected YYYY-MM-DD."}), 400
    if start > end: return jsonify({"error": "Start date must be on or before end date."}), 400
    overlapping = find_overlapping(engineer.id, start, end)
    check = can_allocate(engineer.maxCapacity, overlapping, start, end, 0)
    return jsonify({ "engineer": {"id": engineer.id, "name": engineer.name, "maxCapacity": engineer.maxCapacity}, "startDate": start.isoformat(), "endDate": end.isoformat(), "activeAssignments": [a.to_dict() for a in overlapping], "totalAllocated": engineer.maxCapacity - check.available_capacity, "availableCapacity": check.available_capacity })

@app.route("/api/engineers/skills/<string:skills>", methods=['GET'])
@api_error_handler
def engineers_by_skills(skills):
    wanted = parse_skills(skills)
    matches = [e for e in Engineer.query.order_by(Engineer.name).all() if has_required_skill(e.skills, wanted)]
    return jsonify([e.to_dict() for e in matches])

# --- API Endpoints: Projects ---
@app.route("/api/projects", methods=['GET', 'POST'])
@api_error_handler
def handle_projects():
    if request.method == 'GET':
        query = Project.query
        if request.args.get('status'): query = query.filter_by(status=request.args['status'])
        return jsonify([p.to_dict() for p in query.order_by(Project.startDate, Project.name).all()])
    fields, error = validate_project_payload(json_payload())
    if error: return jsonify({"error": error}), 400
    project = Project(**fields)
    db.session.add(project)
    db.session.commit()
    logging.info(f"Project {project.id} ({project.name}) created.")
    return jsonify(project.to_dict()), 201

@app.route("/api/projects/<int:project_id>", methods=['GET', 'PUT', 'DELETE'])
@api_error_handler
def handle_project(project_id):
    project = db.session.get(Project, project_id)
    if not project: return jsonify({"error": "Project not found"}), 404
    if request.method == 'GET': return jsonify(project.to_dict())
    if request.method == 'DELETE':
        Assignment.query.filter_by(project_id=project.id).delete()
        db.session.delete(project)
        db.session.commit()
        return jsonify({"message": f"Project {project.name} and its assignments have been deleted."})
    fields, error = validate_project_payload(json_payload(), partial=True, current=project)
    if error: return jsonify({"error": error}), 400
    for key, value in fields.items(): setattr(project, key, value)
    db.session.commit()
    return jsonify(project.to_dict())

# --- API Endpoints: Assignments ---
@app.route("/api/assignments", methods=['GET', 'POST'])
@api_error_handler
def handle_assignments():
    if request.method == 'GET':
        query = Assignment.query
        if request.args.get('projectId'): query = query.filter_by(project_id=request.args.get('projectId', type=int))
        if request.args.get('engineerId'): query = query.filter_by(engineer_id=request.args.get('engineerId', type=int))
        return jsonify([a.to_dict() for a in query.order_by(Assignment.startDate, Assignment.id).all()])
    payload = json_payload()
    if not all(payload.get(k) not in (None, '') for k in ('engineerId', 'projectId', 'allocationPercentage', 'startDate', 'endDate', 'role')):
        return jsonify({"error": "Engineer, project, allocation, start date, end date and role are required."}), 400
    role = str(payload['role']).strip()
    if not role: return jsonify({"error": "Role is required."}), 400
    try: engineer = db.session.get(Engineer, parse_int(payload['engineerId']))
    except (TypeError, ValueError): engineer = None
    if not engineer: return jsonify({"error": "Invalid engineer ID"}), 400
    try: project = db.session.get(Project, parse_int(payload['projectId']))
    except (TypeError, ValueError): project = None
    if not project: return jsonify({"error": "Invalid project ID"}), 400
    allocation, error = validate_allocation(payload['allocationPercentage'])
    if error: return jsonify({"error": error}), 400
    try: start, end = parse_date(payload['startDate']), parse_date(payload['endDate'])
    except ValueError: return jsonify({"error": "Start date and end date must be valid dates (YYYY-MM-DD)."}), 400
    if start > end: return jsonify({"error": "Start date must be on or before end date."}), 400
    if not has_required_skill(engineer.skills, project.requiredSkills):
        logging.warning(f"Engineer {engineer.id} skills {engineer.skills} do not match project {project.id} required skills {project.requiredSkills}")
        return jsonify({"error": "Engineer does not have the required skills for this project"}), 400
    if Assignment.query.filter_by(engineer_id=engineer.id, project_id=project.id, role=role).first():
        return jsonify({"error": "Engineer already has this role on the project."}), 409
    check_capacity(engineer, start, end, allocation)
    assignment = Assignment(engineer_id=engineer.id, project_id=project.id, allocationPercentage=allocation, startDate=start, endDate=end, role=role)
    db.session.add(assignment)
    db.session.commit()
    logging.info(f"Assignment {assignment.id} created: engineer {engineer.id} on project {project.id} at {allocation}%.")
    return jsonify(assignment.to_dict()), 201

@app.route("/api/assignments/engineer/<int:engineer_id>", methods=['GET'])
@api_error_handler
def engineer_assignments(engineer_id):
    engineer = db.session.get(Engineer, engineer_id)
    if not engineer: return jsonify({"error": "Engineer not found"}), 404
    return jsonify([a.to_dict() for a in engineer.assignments.order_by(Assignment.startDate, Assignment.id).all()])

@app.route("/api/assignments/<int:assignment_id>", methods=['GET', 'PUT', 'DELETE'])
@api_error_handler
def handle_assignment(assignment_id):
    assignment = db.session.get(Assignment, assignment_id)
    if not assignment: return jsonify({"error": "Assignment not found"}), 404
    if request.method == 'GET': return jsonify(assignment.to_dict())
    if request.method == 'DELETE':
        db.session.delete(assignment)
        db.session.commit()
        return jsonify({"message": "Assignment deleted."})
    payload = json_payload()
    allocation, start, end, role = assignment.allocationPercentage, assignment.startDate, assignment.endDate, assignment.role
    if 'allocationPercentage' in payload:
        allocation, error = validate_allocation(payload['allocationPercentage'])
        if error: return jsonify({"error": error}), 400
    try:
        if payload.get('startDate'): start = parse_date(payload['startDate'])
        if payload.get('endDate'): end = parse_date(payload['endDate'])
    except ValueError: return jsonify({"error": "Start date and end date must be valid dates (YYYY-MM-DD)."}), 400
    if start > end: return jsonify({"error": "Start date must be on or before end date."}), 400
    if 'role' in payload:
        role = str(payload['role'] or '').strip()
        if not role: return jsonify({"error": "Role is required."}), 400
    if (allocation, start, end) != (assignment.allocationPercentage, assignment.startDate, assignment.endDate):
        check_capacity(assignment.engineer, start, end, allocation, exclude_assignment_id=assignment.id)
    assignment.allocationPercentage, assignment.startDate, assignment.endDate, assignment.role = allocation, start, end, role
    db.session.commit()
    return jsonify(assignment.to_dict())

# --- CLI ---
@app.cli.command('seed')
def seed_command():
    """Drops all tables and loads the demo engineers, projects and assignments."""
    db.drop_all()
    db.create_all()
    engineers = [
        Engineer(name='Alex Rodriguez', email='alex@example.com', skills=['React', 'JavaScript', 'TypeScript', 'Node.js'], seniority='senior', maxCapacity=100, department='Frontend'),
        Engineer(name='Priya Patel', email='priya@example.com', skills=['Python', 'Django', 'AWS', 'Machine Learning'], seniority='mid', maxCapacity=100, department='Backend'),
        Engineer(name='James Wilson', email='james@example.com', skills=['React', 'Node.js', 'MongoDB', 'Express'], seniority='junior', maxCapacity=100, department='Fullstack'),
        Engineer(name='Olivia Martinez', email='olivia@example.com', skills=['React Native', 'JavaScript', 'UI/UX', 'Firebase'], seniority='mid', maxCapacity=50, department='Mobile'),
    ]
    for e in engineers: e.title = default_title(e.seniority, e.department)
    projects = [
        Project(name='Customer Portal Redesign', description='Rebuild the customer-facing portal with modern UI and improved functionality', startDate=date(2025, 7, 15), endDate=date(2025, 12, 30), requiredSkills=['React', 'TypeScript', 'Node.js'], teamSize=3, status='planning'),
        Project(name='Data Analytics Platform', description='Build a data analytics platform for internal teams', startDate=date(2025, 6, 1), endDate=date(2025, 9, 30), requiredSkills=['Python', 'Machine Learning', 'AWS'], teamSize=2, status='active'),
        Project(name='Mobile App Development', description='Develop a mobile app for iOS and Android', startDate=date(2025, 8, 1), endDate=date(2026, 1, 31), requiredSkills=['React Native', 'JavaScript', 'Firebase'], teamSize=2, status='planning'),
        Project(name='API Gateway Implementation', description='Implement a central API gateway for all services', startDate=date(2025, 5, 1), endDate=date(2025, 7, 31), requiredSkills=['Node.js', 'Express', 'AWS'], teamSize=2, status='active'),
    ]
    db.session.add_all(engineers + projects)
    db.session.flush()
    alex, priya, james, olivia = engineers
    portal, analytics, mobile, gateway = projects
    # James leaves the gateway the day before portal work starts so no day exceeds 100%.
    for engineer, project, allocation, role, start, end in [(alex, portal, 70, 'Tech Lead', None, None), (james, portal, 100, 'Frontend Developer', None, None), (priya, analytics, 80, 'Data Engineer', None, None), (olivia, mobile, 50, 'Mobile Developer', None, None), (alex, gateway, 30, 'Backend Developer', None, None), (james, gateway, 50, 'DevOps Engineer', None, date(2025, 7, 14))]:
        db.session.add(Assignment(engineer_id=engineer.id, project_id=project.id, allocationPercentage=allocation, startDate=start or project.startDate, endDate=end or project.endDate, role=role))
    db.session.commit()
    click.echo(f"Seeded {len(engineers)} engineers, {len(projects)} projects and {Assignment.query.count()} assignments.")

if __name__ == "__main__":
    app.run(host='0.0.0.0', port=int(os.environ.get('PORT', 5001)), debug=True)
