from core.imports import Blueprint, jsonify, request, jwt_required, current_app, IntegrityError
from core.extensions import db
from core.logging import get_logger
from core.responses import failure_response
from core.result import ErrorKind, Result
from core.security import current_identity, is_admin
from models.userModel import Users
from routes.auth import ROLES, EMAIL_PATTERN, MIN_PASSWORD_LENGTH, hash_password
from services.cart import release_cart
from services.transaction import run_in_transaction

users_bp = Blueprint("users", __name__)

logger = get_logger(__name__)


def _can_access(user_id):
    caller_id, role = current_identity()
    return is_admin(role) or caller_id == user_id


def delete_user_op(session, user_id):
    """Delete an account, handing any stock held in its cart back first."""
    user = session.get(Users, user_id)
    if user is None:
        return Result.failure(ErrorKind.NOT_FOUND, "User not found")

    released = release_cart(session, user_id)
    if not released.ok and released.error.kind is not ErrorKind.NOT_FOUND:
        return released

    record = user.to_dict()
    session.delete(user)
    session.flush()
    return Result.success(record)


@users_bp.route('/api/users', methods=['GET'])
@jwt_required()
def list_users():
    """
    List all users (Admin only)
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200:
        description: List of users
      403:
        description: Forbidden (not an admin)
    """
    _, role = current_identity()
    if not is_admin(role):
        return jsonify({"message": "Forbidden"}), 403

    users = Users.query.order_by(Users.id).all()
    return jsonify({"count": len(users), "users": [u.to_dict() for u in users]}), 200


@users_bp.route('/api/users/<int:user_id>', methods=['GET'])
@jwt_required()
def get_user(user_id):
    """
    Get a user profile (self or Admin)
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - name: user_id
        in: path
        type: integer
        required: true
    responses:
      200:
        description: User profile
      403:
        description: You can only access your own profile
      404:
        description: User not found
    """
    if not _can_access(user_id):
        return jsonify({"message": "You can only access your own profile"}), 403

    user = db.session.get(Users, user_id)
    if not user:
        return jsonify({"message": "User not found"}), 404

    return jsonify(user.to_dict()), 200


@users_bp.route('/api/users/<int:user_id>', methods=['PATCH'])
@jwt_required()
def update_user(user_id):
    """
    Update a user profile (self or Admin)
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - name: user_id
        in: path
        type: integer
        required: true
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            email:
              type: string
            password:
              type: string
            role:
              type: string
              enum: ["USER", "ADMIN"]
    responses:
      200:
        description: User updated
      400:
        description: Invalid field
      403:
        description: You can only update your own profile
      404:
        description: User not found
      409:
        description: Email already exists
    """
    if not _can_access(user_id):
        return jsonify({"message": "You can only update your own profile"}), 403

    user = db.session.get(Users, user_id)
    if not user:
        return jsonify({"message": "User not found"}), 404

    data = request.get_json(silent=True) or {}

    if "email" in data:
        email = data["email"]
        if not isinstance(email, str) or not EMAIL_PATTERN.match(email):
            return jsonify({"message": "A valid email is required"}), 400
        user.email = email.lower()

    if "password" in data:
        password = data["password"]
        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            return jsonify({"message": f"Password must be at least {MIN_PASSWORD_LENGTH} characters"}), 400
        user.password = hash_password(password)

    if "role" in data:
        _, role = current_identity()
        if not is_admin(role):
            return jsonify({"message": "Only admins can change roles"}), 403
        if data["role"] not in ROLES:
            return jsonify({"message": f"Role must be one of {', '.join(ROLES)}"}), 400
        user.role = data["role"]

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"message": "Email already exists"}), 409

    return jsonify(user.to_dict()), 200


@users_bp.route('/api/users/<int:user_id>', methods=['DELETE'])
@jwt_required()
def delete_user(user_id):
    """
    Delete a user (self or Admin). Stock reserved in the user's cart is released.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - name: user_id
        in: path
        type: integer
        required: true
    responses:
      200:
        description: User deleted
      403:
        description: You can only delete your own profile
      404:
        description: User not found
    """
    if not _can_access(user_id):
        return jsonify({"message": "You can only delete your own profile"}), 403

    result = run_in_transaction(
        db.session,
        delete_user_op,
        user_id,
        retries=current_app.config.get("TRANSACTION_RETRIES", 3),
    )
    if not result.ok:
        return failure_response(result.error)

    logger.info("user_deleted", user_id=user_id)
    return jsonify({"message": "User deleted", "user": result.value}), 200
