from datetime import datetime

from flask import Flask

from .auth.routes import auth_bp
from .cli import register_cli
from .config import Config
from .errors import register_errors
from .extensions import db, jwt, migrate, scheduler
from .orders.routes import orders_bp
from .products.routes import products_bp
from .sessions import sweep_sessions
from .stores.routes import stores_bp


def _schedule_jobs(app: Flask) -> None:
    if getattr(app, 'apscheduler', None) or scheduler.running:
        return

    def _run_session_sweep() -> None:
        with app.app_context():
            sweep_sessions()

    scheduler.add_job(
        _run_session_sweep,
        trigger='interval',
        hours=app.config['SESSION_SWEEP_HOURS'],
        id='session-sweep',
        replace_existing=True,
        next_run_time=datetime.now(),
    )
    scheduler.start()
    app.apscheduler = scheduler


def create_app(config_object=None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    register_cli(app)
    register_errors(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(stores_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(orders_bp)

    @app.get('/health')
    def health():
        return {"status": "ok"}, 200

    with app.app_context():
        db.create_all()

    if app.config.get('SCHEDULER_ENABLED'):
        _schedule_jobs(app)

    return app
