from core.imports import Blueprint, jsonify, jwt_required, request, current_app
from core.extensions import db
from core.logging import add_context
from core.responses import failure_response, record_to_dict
from core.security import current_identity, is_admin
from services import cart as cart_service

cart_bp = Blueprint("cart", __name__)


def _retries():
    return current_app.config.get("TRANSACTION_RETRIES", 3)


def _caller():
    """Identity of the caller, bound into every log line of the request."""
    user_id, role = current_identity()
    add_context(user_id=user_id)
    return user_id, role


def _cart_payload(cart):
    payload = record_to_dict(cart)
    payload["total_quantity"] = cart.total_quantity
    payload["total_price"] = cart.total_price
    return payload


@cart_bp.route('/api/cart', methods=['GET'])
@jwt_required()
def get_cart():
    """
    Get the current user's shopping cart
    ---
    tags:
      - Cart
    security:
      - Bearer: []
    responses:
      200:
        description: Cart with items and product snapshots
        schema:
          type: object
          properties:
            id:
              type: integer
              example: 1
            user_id:
              type: integer
              example: 3
            total_quantity:
              type: integer
              example: 2
            items:
              type: array
              items:
                type: object
                properties:
                  id:
                    type: integer
                    example: 7
                  product_id:
                    type: integer
                    example: 10
                  quantity:
                    type: integer
                    example: 2
                  product:
                    type: object
    """
    user_id, _ = _caller()

    result = cart_service.get_cart(db.session, user_id, retries=_retries())
    if not result.ok:
        return failure_response(result.error)

    return jsonify(_cart_payload(result.value)), 200


@cart_bp.route('/api/cart/add', methods=['POST'])
@jwt_required()
def add_to_cart():
    """
    Add a product to the cart, reserving its stock
    ---
    tags:
      - Cart
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - product_id
            - quantity
          properties:
            product_id:
              type: integer
              example: 10
            quantity:
              type: integer
              example: 2
    responses:
      201:
        description: Product added to cart
      400:
        description: Invalid quantity or insufficient stock
      404:
        description: Product not found
      409:
        description: Concurrent update, retry
    """
    data = request.get_json(silent=True) or {}
    user_id, _ = _caller()

    result = cart_service.add_item(
        db.session,
        user_id,
        data.get("product_id"),
        data.get("quantity"),
        retries=_retries(),
    )
    if not result.ok:
        return failure_response(result.error)

    return jsonify({"message": "Product added to cart", "item": record_to_dict(result.value)}), 201


@cart_bp.route('/api/cart/item/<int:item_id>', methods=['PATCH'])
@jwt_required()
def update_cart_item(item_id):
    """
    Update quantity of a cart item, reserving or releasing the difference
    ---
    tags:
      - Cart
    security:
      - Bearer: []
    parameters:
      - name: item_id
        in: path
        type: integer
        required: true
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - quantity
          properties:
            quantity:
              type: integer
              example: 3
    responses:
      200:
        description: Cart item updated
      400:
        description: Invalid quantity or insufficient stock
      404:
        description: Cart or cart item not found
    """
    data = request.get_json(silent=True) or {}
    user_id, _ = _caller()

    result = cart_service.update_item(db.session, user_id, item_id, data.get("quantity"), retries=_retries())
    if not result.ok:
        return failure_response(result.error)

    return jsonify({"message": "Cart item updated successfully", "item": record_to_dict(result.value)}), 200


@cart_bp.route('/api/cart/item/<int:item_id>', methods=['DELETE'])
@jwt_required()
def delete_cart_item(item_id):
    """
    Remove an item from the cart and release its stock
    ---
    tags:
      - Cart
    security:
      - Bearer: []
    parameters:
      - name: item_id
        in: path
        type: integer
        required: true
    responses:
      200:
        description: Cart item deleted
      404:
        description: Cart or cart item not found
    """
    user_id, _ = _caller()

    result = cart_service.remove_item(db.session, user_id, item_id, retries=_retries())
    if not result.ok:
        return failure_response(result.error)

    return jsonify({"message": "Cart item deleted successfully", "item": record_to_dict(result.value)}), 200


@cart_bp.route('/api/cart/clear', methods=['DELETE'])
@jwt_required()
def clear_cart():
    """
    Clear all items from the cart, releasing their stock
    ---
    tags:
      - Cart
    security:
      - Bearer: []
    responses:
      200:
        description: Cart cleared
      404:
        description: Cart not found
    """
    user_id, _ = _caller()

    result = cart_service.clear_cart(db.session, user_id, retries=_retries())
    if not result.ok:
        return failure_response(result.error)

    return jsonify(record_to_dict(result.value)), 200


@cart_bp.route('/api/cart/admin/<int:user_id>', methods=['GET'])
@jwt_required()
def get_cart_as_admin(user_id):
    """
    Get any user's cart (Admin only)
    ---
    tags:
      - Cart
    security:
      - Bearer: []
    parameters:
      - name: user_id
        in: path
        type: integer
        required: true
    responses:
      200:
        description: The user's cart
      403:
        description: Forbidden (not an admin)
    """
    _, role = _caller()
    if not is_admin(role):
        return jsonify({"message": "Forbidden"}), 403

    result = cart_service.get_cart(db.session, user_id, retries=_retries())
    if not result.ok:
        return failure_response(result.error)

    return jsonify(_cart_payload(result.value)), 200
