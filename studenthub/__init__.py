import logging

from flask import Flask
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect
from flask_migrate import Migrate

from config import Config
from studenthub.models import db, User
from studenthub.errors import NotAuthenticated, register_error_handlers
from studenthub.services.policy import AuthorizationPolicy
from studenthub.services.report_queue import ReportQueue

login_manager = LoginManager()
csrf = CSRFProtect()
migrate = Migrate()
report_queue = ReportQueue()


@login_manager.user_loader
def load_user(user_id):
    user = db.session.get(User, int(user_id))
    # Deactivated accounts are treated as logged out
    if user is None or not user.is_active:
        return None
    return user


@login_manager.unauthorized_handler
def unauthorized():
    raise NotAuthenticated()


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)
    csrf.init_app(app)
    migrate.init_app(app, db)
    report_queue.init_app(app)

    app.extensions['authorization_policy'] = AuthorizationPolicy(
        restrict_faculty_approval=app.config['RESTRICT_FACULTY_APPROVAL'],
    )

    register_error_handlers(app)

    # Register Blueprints
    from studenthub.routes.auth_routes import auth_bp
    from studenthub.routes.activity_routes import activity_bp
    from studenthub.routes.report_routes import report_bp
    from studenthub.routes.user_routes import user_bp
    from studenthub.routes.upload_routes import upload_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(activity_bp, url_prefix='/api/activities')
    app.register_blueprint(report_bp, url_prefix='/api/reports')
    app.register_blueprint(user_bp, url_prefix='/api/users')
    app.register_blueprint(upload_bp, url_prefix='/api/upload')

    @app.route('/api/health')
    def health():
        return {'success': True, 'message': 'Smart Student Hub API running'}

    return app
