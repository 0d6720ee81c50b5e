import logging
import os

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

from .models import User, Event, Certificate  # noqa: E402  (register models)


def _configure_logging(app: Flask) -> None:
    level_name = os.getenv("CERT_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    engine_logger = logging.getLogger("eventcert")
    engine_logger.setLevel(level)
    if not engine_logger.handlers and not logging.getLogger().handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        engine_logger.addHandler(handler)
    app.logger.setLevel(level)


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logging.getLogger("eventcert").warning(
            "ignoring non-numeric %s=%r, using %s", name, raw, default
        )
        return default


def create_app():
    app = Flask(__name__)
    app.secret_key = os.getenv("SECRET_KEY", "dev")

    DB_USER = os.getenv("DB_USER", "eventcert")
    DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
    DB_HOST = os.getenv("DB_HOST", "db")
    DB_NAME = os.getenv("DB_NAME", "eventcert")
    DATABASE_URL = os.getenv(
        "DATABASE_URL",
        f"postgresql+psycopg2://{DB_USER}:{DB_PASSWORD}@{DB_HOST}/{DB_NAME}",
    )

    app.config["SQLALCHEMY_DATABASE_URI"] = DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["MAX_CONTENT_LENGTH"] = 25 * 1024 * 1024

    site_root = os.getenv("SITE_ROOT", "/srv")
    app.config["SITE_ROOT"] = site_root
    app.config["CERT_ASSETS_DIR"] = os.getenv(
        "CERT_ASSETS_DIR", os.path.join(app.root_path, "assets")
    )
    app.config["CERT_ASSET_TIMEOUT"] = _float_env("CERT_ASSET_TIMEOUT", 10.0)
    raster_width = _float_env("CERT_RASTER_WIDTH", 0.0)
    app.config["CERT_RASTER_WIDTH"] = raster_width if raster_width > 0 else None

    _configure_logging(app)
    db.init_app(app)

    from .routes.certificates import bp as certificates_bp
    from .routes.certificate_configs import bp as certificate_configs_bp

    app.register_blueprint(certificates_bp)
    app.register_blueprint(certificate_configs_bp)

    @app.get("/healthz")
    def healthz():
        return jsonify({"ok": True})

    return app
