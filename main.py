from core.imports import jsonify, Flask, request
from core.config import Config
from core.extensions import db, jwt, swagger, cors, bcrypt, migrate
from core.logging import add_context, clear_context, configure_logging, get_logger
from routes.auth import auth_bp, seed_demo_admin, seed_demo_user
from routes.users import users_bp
from routes.products import products_bp, seed_products
from routes.cart import cart_bp

logger = get_logger(__name__)


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    configure_logging(app.config.get("LOG_LEVEL"))

    db.init_app(app)
    jwt.init_app(app)
    swagger.init_app(app)
    cors.init_app(app)
    bcrypt.init_app(app)
    migrate.init_app(app, db)

    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(cart_bp)

    @app.before_request
    def bind_request_context():
        clear_context()
        add_context(method=request.method, path=request.path)

    @app.route('/ping')
    def ping():
        return "Ping received", 200

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"message": "Resource not found"}), 404

    logger.info("app_created", database=app.config.get("SQLALCHEMY_DATABASE_URI", "").split("://")[0])
    return app


if __name__ == "__main__":
    app = create_app()
    with app.app_context():
        db.create_all()

        seed_demo_admin()
        seed_demo_user()
        seed_products()

    app.run(debug=True)
