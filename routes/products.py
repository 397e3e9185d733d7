from core.imports import Blueprint, jsonify, request, jwt_required, current_app, SQLAlchemyError
from core.extensions import db
from core.logging import get_logger
from core.responses import failure_response, record_to_dict
from core.security import current_identity, is_admin
from models.cartModels import CartItem
from models.productModels import Products
from services.inventory import adjust_stock

products_bp = Blueprint('products', __name__)

logger = get_logger(__name__)

DEMO_PRODUCTS = [
    {
        "name": "Premium Headphones",
        "description": "High-quality wireless headphones with noise cancellation",
        "price": 299.99,
        "is_connected_only": False,
        "stock_quantity": 25,
    },
    {
        "name": "Mechanical Keyboard",
        "description": "Hot-swappable keyboard with tactile switches",
        "price": 149.0,
        "is_connected_only": False,
        "stock_quantity": 40,
    },
    {
        "name": "Members Edition Backpack",
        "description": "Limited run, only visible to signed-in customers",
        "price": 89.5,
        "is_connected_only": True,
        "stock_quantity": 10,
    },
]


def seed_products():
    for prod in DEMO_PRODUCTS:
        existing = Products.query.filter_by(name=prod["name"]).first()
        if not existing:
            db.session.add(Products(**prod))
            logger.info("demo_product_created", name=prod["name"])
    db.session.commit()


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_product_fields(data, partial=False):
    """Validate a product payload.

    Returns ``(fields, error_message)``. ``stock_quantity`` is only accepted on
    creation; after that stock moves through the inventory ledger.
    """
    fields = {}
    required = () if partial else ("name", "description", "price")

    for name in required:
        if name not in data:
            return None, f"{name} is required"

    if "name" in data:
        if not isinstance(data["name"], str) or not data["name"].strip():
            return None, "name must be a non-empty string"
        fields["name"] = data["name"].strip()

    if "description" in data:
        if not isinstance(data["description"], str):
            return None, "description must be a string"
        fields["description"] = data["description"]

    if "price" in data:
        if not _is_number(data["price"]) or data["price"] < 0:
            return None, "price must be a number >= 0"
        fields["price"] = float(data["price"])

    if "is_connected_only" in data:
        if not isinstance(data["is_connected_only"], bool):
            return None, "is_connected_only must be a boolean"
        fields["is_connected_only"] = data["is_connected_only"]

    if "stock_quantity" in data:
        if partial:
            return None, "stock_quantity cannot be set directly, use the stock endpoint"
        stock = data["stock_quantity"]
        if not isinstance(stock, int) or isinstance(stock, bool) or stock < 0:
            return None, "stock_quantity must be an integer >= 0"
        fields["stock_quantity"] = stock

    return fields, None


@products_bp.route('/api/products', methods=['GET'])
@jwt_required(optional=True)
def list_products():
    """
    Get all products. Connected-only products are hidden from anonymous visitors.
    ---
    tags:
      - Products
    responses:
      200:
        description: List of products
    """
    user_id, _ = current_identity()

    query = Products.query
    if user_id is None:
        query = query.filter_by(is_connected_only=False)

    products = query.order_by(Products.id).all()
    return jsonify({"count": len(products), "products": [p.to_dict() for p in products]}), 200


@products_bp.route('/api/products/<int:product_id>', methods=['GET'])
@jwt_required(optional=True)
def get_product(product_id):
    """
    Get product by ID
    ---
    tags:
      - Products
    parameters:
      - name: product_id
        in: path
        type: integer
        required: true
    responses:
      200:
        description: Product
      403:
        description: Product only accessible to authenticated users
      404:
        description: Product not found
    """
    user_id, _ = current_identity()

    product = db.session.get(Products, product_id)
    if not product:
        return jsonify({"message": f"Product with ID {product_id} not found"}), 404

    if product.is_connected_only and user_id is None:
        return jsonify({"message": "This product is only accessible to authenticated users"}), 403

    return jsonify(product.to_dict()), 200


@products_bp.route('/api/products', methods=['POST'])
@jwt_required()
def create_product():
    """
    Create new product (Admin only)
    ---
    tags:
      - Products
    security:
      - Bearer: []
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - name
            - description
            - price
          properties:
            name:
              type: string
              example: "Premium Headphones"
            description:
              type: string
              example: "High-quality wireless headphones with noise cancellation"
            price:
              type: number
              example: 299.99
            is_connected_only:
              type: boolean
              example: false
            stock_quantity:
              type: integer
              example: 10
    responses:
      201:
        description: Product created
      400:
        description: Invalid product payload
      403:
        description: Forbidden (not an admin)
    """
    _, role = current_identity()
    if not is_admin(role):
        return jsonify({"message": "Forbidden"}), 403

    fields, error = parse_product_fields(request.get_json(silent=True) or {})
    if error:
        return jsonify({"message": error}), 400

    product = Products(**fields)
    db.session.add(product)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("product_create_failed")
        return jsonify({"message": "Failed to create product"}), 500

    logger.info("product_created", product_id=product.id, stock_quantity=product.stock_quantity)
    return jsonify(product.to_dict()), 201


@products_bp.route('/api/products/<int:product_id>', methods=['PATCH'])
@jwt_required()
def update_product(product_id):
    """
    Update product details (Admin only). Stock changes go through /stock.
    ---
    tags:
      - Products
    security:
      - Bearer: []
    parameters:
      - name: product_id
        in: path
        type: integer
        required: true
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            name:
              type: string
            description:
              type: string
            price:
              type: number
            is_connected_only:
              type: boolean
    responses:
      200:
        description: Product updated
      400:
        description: Invalid product payload
      403:
        description: Forbidden (not an admin)
      404:
        description: Product not found
    """
    _, role = current_identity()
    if not is_admin(role):
        return jsonify({"message": "Forbidden"}), 403

    product = db.session.get(Products, product_id)
    if not product:
        return jsonify({"message": f"Product with ID {product_id} not found"}), 404

    fields, error = parse_product_fields(request.get_json(silent=True) or {}, partial=True)
    if error:
        return jsonify({"message": error}), 400

    for key, value in fields.items():
        setattr(product, key, value)

    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("product_update_failed", product_id=product_id)
        return jsonify({"message": "Failed to update the product"}), 500

    return jsonify(product.to_dict()), 200


@products_bp.route('/api/products/<int:product_id>', methods=['DELETE'])
@jwt_required()
def delete_product(product_id):
    """
    Delete product (Admin only). Refused while units sit in a cart.
    ---
    tags:
      - Products
    security:
      - Bearer: []
    parameters:
      - name: product_id
        in: path
        type: integer
        required: true
    responses:
      200:
        description: Product deleted
      403:
        description: Forbidden (not an admin)
      404:
        description: Product not found
      409:
        description: Product is reserved in one or more carts
    """
    _, role = current_identity()
    if not is_admin(role):
        return jsonify({"message": "Forbidden"}), 403

    product = db.session.get(Products, product_id)
    if not product:
        return jsonify({"message": f"Product with ID {product_id} not found"}), 404

    if CartItem.query.filter_by(product_id=product_id).count():
        return jsonify({"message": "Product is reserved in one or more carts"}), 409

    record = product.to_dict()
    db.session.delete(product)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("product_delete_failed", product_id=product_id)
        return jsonify({"message": "Failed to delete the product"}), 409

    logger.info("product_deleted", product_id=product_id)
    return jsonify({"message": "Product deleted", "product": record}), 200


@products_bp.route('/api/products/<int:product_id>/stock', methods=['PATCH'])
@jwt_required()
def update_stock(product_id):
    """
    Apply a stock delta to a product (Admin only)
    ---
    tags:
      - Products
    security:
      - Bearer: []
    parameters:
      - name: product_id
        in: path
        type: integer
        required: true
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - delta
          properties:
            delta:
              type: integer
              example: 5
    responses:
      200:
        description: Stock updated
      400:
        description: Invalid delta or insufficient stock
      403:
        description: Forbidden (not an admin)
      404:
        description: Product not found
    """
    _, role = current_identity()
    if not is_admin(role):
        return jsonify({"message": "Forbidden"}), 403

    data = request.get_json(silent=True) or {}
    result = adjust_stock(
        db.session,
        product_id,
        data.get("delta"),
        retries=current_app.config.get("TRANSACTION_RETRIES", 3),
    )
    if not result.ok:
        return failure_response(result.error)

    return jsonify(record_to_dict(result.value)), 200
