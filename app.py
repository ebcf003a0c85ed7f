from flask import Flask
from flask_cors import CORS
from dotenv import load_dotenv

load_dotenv()

import config
from connectors.defaults import build_default_registry
from database import close_db
from services.resolution_service import ResolutionService
from views.connectors import connectors_bp
from views.dashboard import dashboard_bp
from views.status import status_bp


def create_app(registry=None, resolution_service=None):
    """Build the web app. The registry and resolution service live for the whole process."""
    app = Flask(__name__)
    if config.CORS_ALLOW_ORIGINS:
        CORS(
            app,
            origins=config.CORS_ALLOW_ORIGINS,
            supports_credentials=config.CORS_SUPPORTS_CREDENTIALS,
        )
    else:
        CORS(app)

    if registry is None:
        registry = build_default_registry()
    if resolution_service is None:
        resolution_service = ResolutionService(registry)
    app.extensions["connector_registry"] = registry
    app.extensions["resolution_service"] = resolution_service

    app.register_blueprint(dashboard_bp)
    app.register_blueprint(connectors_bp)
    app.register_blueprint(status_bp)

    @app.teardown_appcontext
    def teardown_db(exception):
        close_db(exception)

    @app.route("/healthz", methods=["GET"])
    def healthz():
        return {"status": "ok"}, 200

    return app


app = create_app()
