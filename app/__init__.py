from flask import Flask
from .config import Config
from .extensions import db, migrate, jwt, mail
from .errors import register_error_handlers
from .log_config import configure_logging
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix


def create_app(config_class=Config):
    app = Flask(__name__)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1)
    CORS(app, resources={r"/*": {"origins": "*"}})
    app.config.from_object(config_class)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    mail.init_app(app)

    register_error_handlers(app)

    from .routes import audit, auth, discounts, verification
    from .tasks.cli import perks_cli

    # Register blueprints
    app.register_blueprint(auth.bp, url_prefix="/auth")
    app.register_blueprint(discounts.bp, url_prefix="/discounts")
    app.register_blueprint(verification.bp, url_prefix="/verification")
    app.register_blueprint(audit.bp, url_prefix="/audit")

    app.cli.add_command(perks_cli)

    return app
