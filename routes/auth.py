from core.imports import Blueprint, jsonify, request, create_access_token, IntegrityError
from core.extensions import db, bcrypt
from core.logging import get_logger
from models.userModel import Users
import re

auth_bp = Blueprint('auth', __name__)

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
ROLES = ("USER", "ADMIN")
MIN_PASSWORD_LENGTH = 6


def validate_credentials(email, password):
    """Return an error message for a bad email/password pair, or None."""
    if not isinstance(email, str) or not EMAIL_PATTERN.match(email):
        return "A valid email is required"
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    return None


def hash_password(raw_password):
    return bcrypt.generate_password_hash(raw_password).decode('utf-8')


def _seed_user(email, raw_password, role):
    user = Users.query.filter_by(email=email).first()
    if not user:
        user = Users(email=email, password=hash_password(raw_password), role=role)
        db.session.add(user)
        db.session.commit()
        logger.info("demo_user_created", email=email, role=role)
    else:
        logger.info("demo_user_exists", email=email)
    return user


def seed_demo_admin():
    return _seed_user("admin@storefront.dev", "password123", "ADMIN")


def seed_demo_user():
    return _seed_user("demo@storefront.dev", "password123", "USER")


@auth_bp.route('/api/auth/signup', methods=['POST'])
def signup():
    """
    Create a new account
    ---
    tags:
      - Authentication
    consumes:
      - application/json
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - email
            - password
          properties:
            email:
              type: string
              example: "user@example.com"
            password:
              type: string
              example: "password123"
            role:
              type: string
              enum: ["USER", "ADMIN"]
              example: "USER"
    responses:
      201:
        description: Account created
      400:
        description: Invalid email, password or role
      409:
        description: Email already exists
    """
    data = request.get_json(silent=True) or {}
    email = data.get('email')
    password = data.get('password')
    role = data.get('role', "USER")

    error = validate_credentials(email, password)
    if error:
        return jsonify({"message": error}), 400
    if role not in ROLES:
        return jsonify({"message": f"Role must be one of {', '.join(ROLES)}"}), 400

    user = Users(email=email.lower(), password=hash_password(password), role=role)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"message": "Email already exists"}), 409

    logger.info("user_signed_up", user_id=user.id, role=role)
    return jsonify({"message": "Account created", "user": user.to_dict()}), 201


@auth_bp.route('/api/auth/login', methods=['POST'])
def login():
    """
    Log in and receive a JWT access token
    ---
    tags:
      - Authentication
    consumes:
      - application/json
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - email
            - password
          properties:
            email:
              type: string
              example: "demo@storefront.dev"
            password:
              type: string
              example: "password123"
    responses:
      200:
        description: Login successful
      400:
        description: Missing email or password
      401:
        description: Invalid credentials
    """
    data = request.get_json(silent=True) or {}
    email = data.get('email')
    password = data.get('password')

    if not email or not isinstance(password, str) or not password:
        return jsonify({"message": "Email and password are required"}), 400

    user = Users.query.filter_by(email=str(email).lower()).first()

    if not user or not bcrypt.check_password_hash(user.password, password):
        logger.warning("login_failed", email=email)
        return jsonify({"message": "Invalid credentials"}), 401

    access_token = create_access_token(
        identity=str(user.id),
        additional_claims={"role": user.role}
    )

    return jsonify({
        "message": "Login successful",
        "access_token": access_token,
        "user": {
            "id": user.id,
            "email": user.email,
            "role": user.role
        }
    }), 200
