from core.extensions import db
from core.imports import datetime

class Cart(db.Model):
    __tablename__ = "cart"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    cart_items = db.relationship("CartItem", backref="cart", cascade="all, delete-orphan", order_by="CartItem.id")


class CartItem(db.Model):
    __tablename__ = "cart_item"

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey('cart.id'), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False, index=True)
    product = db.relationship("Products")

    quantity = db.Column(db.Integer, default=1, nullable=False)
    version = db.Column(db.Integer, nullable=False)

    # stale writes (UPDATE/DELETE against an outdated version) raise StaleDataError
    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        # one row per (cart, product); a second add merges into it
        db.UniqueConstraint("cart_id", "product_id", name="uq_cart_item_cart_product"),
        db.CheckConstraint("quantity >= 1", name="ck_cart_item_quantity_positive"),
    )
